# quizbot/errors.py


class QuizBotError(Exception):
    pass


class ConfigurationError(QuizBotError):
    """
    Fatal: the process cannot start (missing bot token, bad env values,
    unreachable database at start-up).
    """


class StoreUnavailable(QuizBotError):
    """
    Per-request failure of the durable store (error or timeout).
    The cache is never changed when this is raised.
    """


class MalformedInteraction(QuizBotError):
    pass


class UnknownTask(MalformedInteraction):
    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} is not in the catalog")
        self.task_id = task_id
