# quizbot/session_handler.py

import logging
from dataclasses import dataclass
from typing import List, Tuple, Union

from quizbot.errors import MalformedInteraction, StoreUnavailable, UnknownTask
from quizbot.progress_coordinator import ProgressCoordinator
from quizbot.task_catalog import Task, TaskCatalog
from quizbot.task_dispatch import evaluate, next_task, progress_report

logger = logging.getLogger("quizbot")

# Telegram rejects callback data longer than this
MAX_TOKEN_BYTES = 64

WELCOME_TEXT = (
    "Welcome to the Go learning bot! 🚀\n"
    "\n"
    "Use the commands:\n"
    "/task - Get a new task\n"
    "/progress - Show your progress"
)
CHOOSE_SUFFIX = "\n\nChoose the correct answer:"
ALL_SOLVED_TEXT = "Congratulations! You have solved all the tasks 🎉"
ALL_AVAILABLE_SOLVED_TEXT = "🎉 You have solved all available tasks!"
UNKNOWN_COMMAND_TEXT = "Unknown command 🤷"
CORRECT_TEXT = "Correct! ✅"
INCORRECT_TEXT = "Incorrect ❌ Try again!"
LOAD_FAILED_TEXT = "Could not load your progress 😕 Please try again later."
SAVE_FAILED_TEXT = "Could not save your progress 😕 Please answer again in a moment."


# -----------------------
# Outbound presentation requests
# -----------------------

@dataclass(frozen=True)
class SendText:
    chat_id: int
    text: str


@dataclass(frozen=True)
class SendChoices:
    chat_id: int
    text: str
    # (button label, callback token)
    choices: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Acknowledge:
    query_id: str
    text: str = ""


Outbound = Union[SendText, SendChoices, Acknowledge]


# -----------------------
# Choice token codec
# -----------------------

def encode_choice_token(task_id: int, option: str) -> str:
    token = f"{task_id}:{option}"
    if len(token.encode("utf-8")) > MAX_TOKEN_BYTES:
        raise ValueError(f"Choice token for task {task_id} exceeds {MAX_TOKEN_BYTES} bytes: {option!r}")
    return token


def parse_choice_token(token: str) -> Tuple[int, str]:
    """'<task_id>:<option>' -> (task_id, option). The option may contain ':'."""
    task_part, sep, option = (token or "").partition(":")
    if not sep:
        raise MalformedInteraction(f"Malformed choice token: {token!r}")
    try:
        task_id = int(task_part)
    except ValueError:
        raise MalformedInteraction(f"Malformed task id in choice token: {token!r}")
    if task_id <= 0:
        raise MalformedInteraction(f"Malformed task id in choice token: {token!r}")
    return task_id, option


class SessionHandler:
    """
    Turns inbound intents (command invoked, choice selected) into outbound
    presentation requests. Store failures end as a friendly message; malformed
    interactions are logged and dropped.
    """

    def __init__(self, coordinator: ProgressCoordinator, catalog: TaskCatalog):
        self.coordinator = coordinator
        self.catalog = catalog

    def present_task(self, chat_id: int, task: Task) -> SendChoices:
        choices = tuple((option, encode_choice_token(task.task_id, option)) for option in task.options)
        return SendChoices(chat_id=chat_id, text=f"{task.text}{CHOOSE_SUFFIX}", choices=choices)

    # -----------------------
    # Commands
    # -----------------------

    def handle_command(self, chat_id: int, user_id: int, command: str) -> List[Outbound]:
        command = (command or "").strip().lstrip("/").lower()
        logger.debug("command=%s chat_id=%s user_id=%s", command, chat_id, user_id)

        if command == "start":
            return [SendText(chat_id, WELCOME_TEXT)]

        elif command == "task":
            return self.handle_task(chat_id, user_id)

        elif command == "progress":
            return self.handle_progress(chat_id, user_id)

        return [SendText(chat_id, UNKNOWN_COMMAND_TEXT)]

    def handle_task(self, chat_id: int, user_id: int) -> List[Outbound]:
        try:
            progress = self.coordinator.get_progress(user_id)
        except StoreUnavailable as e:
            logger.warning("Could not load progress for user %s: %s", user_id, e)
            return [SendText(chat_id, LOAD_FAILED_TEXT)]

        task = next_task(self.catalog, progress)
        if task is None:
            return [SendText(chat_id, ALL_SOLVED_TEXT)]
        return [self.present_task(chat_id, task)]

    def handle_progress(self, chat_id: int, user_id: int) -> List[Outbound]:
        try:
            progress = self.coordinator.get_progress(user_id)
        except StoreUnavailable as e:
            logger.warning("Could not load progress for user %s: %s", user_id, e)
            return [SendText(chat_id, LOAD_FAILED_TEXT)]

        report = progress_report(self.catalog, progress)
        text = (
            "Your progress: 📊\n"
            "\n"
            f"Tasks solved: {report.solved}/{report.total}\n"
            f"Progress: {report.percent_text}"
        )
        return [SendText(chat_id, text)]

    # -----------------------
    # Choice selection
    # -----------------------

    def handle_choice(self, query_id: str, chat_id: int, user_id: int, token: str) -> List[Outbound]:
        try:
            task_id, option = parse_choice_token(token)
            task = self.catalog.find(task_id)
            if task is None:
                raise UnknownTask(task_id)
        except MalformedInteraction as e:
            logger.warning("Dropping choice from user %s: %s", user_id, e)
            # empty answer only stops the client's loading indicator
            return [Acknowledge(query_id)]

        if not evaluate(task, option):
            return [Acknowledge(query_id, INCORRECT_TEXT)]

        try:
            self.coordinator.record_solved(user_id, task.task_id)
        except StoreUnavailable as e:
            logger.warning("Could not save progress for user %s task %s: %s", user_id, task.task_id, e)
            return [Acknowledge(query_id, CORRECT_TEXT), SendText(chat_id, SAVE_FAILED_TEXT)]

        actions: List[Outbound] = [Acknowledge(query_id, CORRECT_TEXT)]
        try:
            progress = self.coordinator.get_progress(user_id)
        except StoreUnavailable as e:
            logger.warning("Could not load progress for user %s: %s", user_id, e)
            actions.append(SendText(chat_id, LOAD_FAILED_TEXT))
            return actions

        following = next_task(self.catalog, progress)
        if following is None:
            actions.append(SendText(chat_id, ALL_AVAILABLE_SOLVED_TEXT))
        else:
            actions.append(self.present_task(chat_id, following))
        return actions
