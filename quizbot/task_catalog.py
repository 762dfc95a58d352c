# quizbot/task_catalog.py

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Tuple


@dataclass(frozen=True)
class Task:
    task_id: int
    text: str
    answer: str
    options: Tuple[str, ...]


class TaskCatalog:
    """
    Immutable, ordered list of tasks with an id index built once.
    The order is the curriculum order used by dispatch.
    """

    def __init__(self, tasks: Iterable[Task]):
        self._tasks: Tuple[Task, ...] = tuple(tasks)
        self._by_id: Dict[int, Task] = {}
        for task in self._tasks:
            if task.task_id in self._by_id:
                raise ValueError(f"Duplicate task id in catalog: {task.task_id}")
            self._by_id[task.task_id] = task

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self._tasks

    def find(self, task_id: int) -> Optional[Task]:
        return self._by_id.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)


DEFAULT_TASKS = (
    Task(
        task_id=1,
        text="Which keyword declares a variable in Go?",
        answer="var",
        options=("let", "const", "var", "define"),
    ),
    Task(
        task_id=2,
        text="Which data type is used for integers in Go?",
        answer="int",
        options=("integer", "float", "int", "number"),
    ),
    Task(
        task_id=3,
        text="Which data type is used for strings in Go?",
        answer="string",
        options=("char", "string", "text", "varchar"),
    ),
    Task(
        task_id=4,
        text="Which directive imports packages in Go?",
        answer="import",
        options=("include", "import", "use", "require"),
    ),
    Task(
        task_id=5,
        text="What does fmt.Println(1+1) print in Go?",
        answer="2",
        options=("1", "2", "3", "Error"),
    ),
)


def default_catalog() -> TaskCatalog:
    return TaskCatalog(DEFAULT_TASKS)
