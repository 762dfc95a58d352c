# quizbot/task_dispatch.py

from dataclasses import dataclass
from typing import Mapping, Optional

from quizbot.task_catalog import Task, TaskCatalog


def next_task(catalog: TaskCatalog, snapshot: Mapping[int, bool]) -> Optional[Task]:
    """
    First task, in catalog order, that is missing from the snapshot or not solved.
    None once every catalog task is solved. Ids unknown to the catalog are ignored.
    """
    for task in catalog:
        if not snapshot.get(task.task_id, False):
            return task
    return None


def evaluate(task: Task, submitted_answer: str) -> bool:
    # exact match: no trimming, no case folding
    return submitted_answer == task.answer


@dataclass(frozen=True)
class ProgressReport:
    solved: int
    total: int

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return self.solved / self.total * 100

    @property
    def percent_text(self) -> str:
        return f"{self.percent:.1f}%"


def progress_report(catalog: TaskCatalog, snapshot: Mapping[int, bool]) -> ProgressReport:
    solved = sum(1 for task in catalog if snapshot.get(task.task_id, False))
    return ProgressReport(solved=solved, total=len(catalog))
