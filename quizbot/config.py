# quizbot/config.py

import math
import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from quizbot.errors import ConfigurationError

STORE_MODES = ("auto", "reconciled", "memory")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _float_env(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


class BotConfig:
    """
    Process configuration read from the environment (and a .env file when
    loaded through from_env()).

    Database selection:
      - DATABASE_URL wins when set (any SQLAlchemy URL).
      - otherwise DB_HOST + DB_NAME build a postgresql+pg8000 URL; the password
        comes from DB_PASSWORD or, when empty, from Secret Manager (DB_SECRET_ID).
      - with neither, there is no durable store.

    STORE_MODE=auto resolves to "reconciled" when a database is configured and to
    "memory" (cache-only, progress lost on restart) otherwise.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        env = os.environ if env is None else env

        self.BOT_TOKEN = (env.get("BOT_TOKEN") or "").strip()
        if not self.BOT_TOKEN:
            raise ConfigurationError("BOT_TOKEN env var is required")

        # ---- database ----
        self.DATABASE_URL = (env.get("DATABASE_URL") or "").strip()
        self.DB_HOST = (env.get("DB_HOST") or "").strip()
        self.DB_PORT = _int_env(env, "DB_PORT", 5432)
        self.DB_NAME = (env.get("DB_NAME") or "").strip()
        self.DB_USER = (env.get("DB_USER") or "").strip()
        self.DB_PASSWORD = env.get("DB_PASSWORD") or ""
        self.DB_SECRET_ID = (env.get("DB_SECRET_ID") or "").strip()
        self.PROJECT_ID = (env.get("GOOGLE_CLOUD_PROJECT") or "").strip()

        # ---- timeouts ----
        self.STORE_TIMEOUT_SECONDS = _float_env(env, "STORE_TIMEOUT_SECONDS", 3.0)
        self.DB_CONNECT_TIMEOUT_SECONDS = _float_env(env, "DB_CONNECT_TIMEOUT_SECONDS", 5.0)

        # ---- cache / workers ----
        self.CACHE_TTL_SECONDS = _float_env(env, "CACHE_TTL_SECONDS", None)
        self.CACHE_SWEEP_SECONDS = _float_env(env, "CACHE_SWEEP_SECONDS", 60.0)
        self.CONCURRENT_INSTANCES = _int_env(env, "CONCURRENT_INSTANCES", 8)

        self.LOG_LEVEL = (env.get("LOG_LEVEL") or "INFO").strip().upper()

        mode = (env.get("STORE_MODE") or "auto").strip().lower()
        if mode not in STORE_MODES:
            raise ConfigurationError(f"STORE_MODE must be one of {STORE_MODES}, got {mode!r}")
        if mode == "auto":
            mode = "reconciled" if self.has_database else "memory"
        if mode == "reconciled" and not self.has_database:
            raise ConfigurationError(
                "STORE_MODE=reconciled needs DATABASE_URL or DB_HOST/DB_NAME"
            )
        self.STORE_MODE = mode

    @classmethod
    def from_env(cls) -> "BotConfig":
        load_dotenv()
        return cls()

    @property
    def has_database(self) -> bool:
        return bool(self.DATABASE_URL or (self.DB_HOST and self.DB_NAME))

    @property
    def durable(self) -> bool:
        return self.STORE_MODE == "reconciled"
