# bot_main.py
"""
Telegram quiz bot: entry point.

Durability mode
---------------
STORE_MODE decides where progress lives:
  - reconciled: PostgreSQL (user_progress table) is the system of record, the
    in-process ProgressCache only speeds up reads and is refreshed after every
    confirmed write.
  - memory: no database. The cache is the only record of progress and it is
    lost when the process restarts.
  - auto (default): reconciled when DATABASE_URL or DB_HOST/DB_NAME is set.

Concurrency
-----------
aiogram handles updates concurrently; each intent runs the synchronous
SessionHandler in a worker thread. CONCURRENT_INSTANCES caps how many intents
are in flight across all users.
"""

import asyncio
import logging
import sys
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.token import TokenValidationError

from quizbot.config import BotConfig
from quizbot.db_connection import DbConnection
from quizbot.errors import ConfigurationError
from quizbot.progress_cache import ProgressCache
from quizbot.progress_coordinator import ProgressCoordinator
from quizbot.progress_store import DurableProgressStore, MemoryOnlyProgressStore, ProgressStoreAdapter
from quizbot.session_handler import SessionHandler
from quizbot.task_catalog import default_catalog
from quizbot.telegram_transport import IntentRunner, TelegramTransport, build_dispatcher, sweep_loop

logger = logging.getLogger("quizbot")


def build_store(config: BotConfig) -> tuple[ProgressStoreAdapter, Optional[DbConnection]]:
    if not config.durable:
        logger.warning(
            "No database configured: running in cache-only mode, progress is lost on restart"
        )
        return MemoryOnlyProgressStore(), None

    connection = DbConnection(config)
    connection.provision_schema()
    store = DurableProgressStore(
        connection.build_db_session_factory(),
        timeout_seconds=config.STORE_TIMEOUT_SECONDS,
    )
    return store, connection


def build_handler(config: BotConfig, store: ProgressStoreAdapter) -> SessionHandler:
    # eviction only makes sense when the store can reload what was evicted
    ttl = config.CACHE_TTL_SECONDS if store.durable else None
    if config.CACHE_TTL_SECONDS and not store.durable:
        logger.warning("CACHE_TTL_SECONDS ignored in cache-only mode")
    cache = ProgressCache(ttl_seconds=ttl)
    coordinator = ProgressCoordinator(cache, store)
    return SessionHandler(coordinator, default_catalog())


async def run_bot(config: BotConfig, handler: SessionHandler) -> None:
    try:
        bot = Bot(token=config.BOT_TOKEN)
    except TokenValidationError as e:
        raise ConfigurationError(f"BOT_TOKEN is not a valid Telegram token: {e}")
    try:
        try:
            me = await bot.get_me()
        except TelegramAPIError as e:
            raise ConfigurationError(f"Telegram rejected the bot at start-up: {e}")
        logger.info("Authorized as @%s", me.username)

        runner = IntentRunner(TelegramTransport(bot), max_concurrent=config.CONCURRENT_INSTANCES)
        dp = build_dispatcher(handler, runner)

        sweeper = asyncio.create_task(
            sweep_loop(handler.coordinator.cache, config.CACHE_SWEEP_SECONDS)
        )
        try:
            await dp.start_polling(bot)
        finally:
            sweeper.cancel()
    finally:
        await bot.session.close()


def main() -> int:
    try:
        config = BotConfig.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Configuration error: %s", e)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    connection = None
    try:
        store, connection = build_store(config)
        handler = build_handler(config, store)
        logger.info("Starting quiz bot (store_mode=%s, max_concurrent=%d)",
                    config.STORE_MODE, config.CONCURRENT_INSTANCES)
        asyncio.run(run_bot(config, handler))
    except ConfigurationError as e:
        logger.error("Startup failed: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        if connection is not None:
            connection.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
