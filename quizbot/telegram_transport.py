# quizbot/telegram_transport.py

import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from aiogram import Bot, Dispatcher, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from quizbot.progress_cache import ProgressCache
from quizbot.session_handler import Acknowledge, Outbound, SendChoices, SendText, SessionHandler

logger = logging.getLogger("quizbot")


def parse_command(text: Optional[str]) -> Optional[str]:
    """'/task@QuizBot extra' -> 'task'; None when the text is not a command."""
    if not text or not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0]


def build_keyboard(choices) -> InlineKeyboardMarkup:
    # one row with every option
    row = [InlineKeyboardButton(text=label, callback_data=token) for (label, token) in choices]
    return InlineKeyboardMarkup(inline_keyboard=[row])


class TelegramTransport:
    """Delivers outbound presentation requests through an aiogram Bot."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def deliver(self, actions: Iterable[Outbound]) -> int:
        """
        Send every action in order. A failed action is logged and skipped.
        Returns how many actions were delivered.
        """
        delivered = 0
        for action in actions:
            try:
                if isinstance(action, SendChoices):
                    await self.bot.send_message(
                        chat_id=action.chat_id,
                        text=action.text,
                        reply_markup=build_keyboard(action.choices),
                    )
                elif isinstance(action, SendText):
                    await self.bot.send_message(chat_id=action.chat_id, text=action.text)
                elif isinstance(action, Acknowledge):
                    await self.bot.answer_callback_query(
                        callback_query_id=action.query_id,
                        text=action.text or None,
                    )
                else:
                    logger.warning("Unknown outbound action: %r", action)
                    continue
                delivered += 1
            except TelegramAPIError as e:
                logger.exception("Error delivering %s: %s", type(action).__name__, e)
        return delivered


class IntentRunner:
    """
    Runs the synchronous session handler in worker threads, at most
    max_concurrent at a time across all users, and delivers the result.
    """

    def __init__(self, transport: TelegramTransport, max_concurrent: int = 8):
        self.transport = transport
        self.max_concurrent = max_concurrent
        self._slots = asyncio.Semaphore(max_concurrent)

    async def run(self, fn: Callable[..., List[Outbound]], *args) -> None:
        async with self._slots:
            try:
                actions = await asyncio.to_thread(fn, *args)
            except Exception as e:
                logger.exception("Error handling intent %s%r: %s", getattr(fn, "__name__", fn), args, e)
                return
        await self.transport.deliver(actions)


def build_dispatcher(handler: SessionHandler, runner: IntentRunner) -> Dispatcher:
    router = Router(name="quizbot")

    @router.message(F.text.startswith("/"))
    async def on_command(message: Message) -> None:
        command = parse_command(message.text)
        if command is None:
            return
        user_id = message.from_user.id if message.from_user else message.chat.id
        await runner.run(handler.handle_command, message.chat.id, user_id, command)

    @router.callback_query()
    async def on_choice(query: CallbackQuery) -> None:
        chat_id = query.message.chat.id if query.message is not None else query.from_user.id
        await runner.run(handler.handle_choice, query.id, chat_id, query.from_user.id, query.data or "")

    dp = Dispatcher()
    dp.include_router(router)
    return dp


async def sweep_loop(cache: ProgressCache, interval_seconds: float) -> None:
    while True:
        removed = cache.sweep_expired()
        if removed:
            logger.debug("ProgressCache sweep: removed %d expired snapshots", removed)
        await asyncio.sleep(interval_seconds)
