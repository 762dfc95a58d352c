# quizbot/db_connection.py

import logging
import os
from typing import Callable

from google.api_core.exceptions import GoogleAPIError
from google.auth import default as google_auth_default
from google.auth.exceptions import GoogleAuthError
from google.cloud import secretmanager
from google.oauth2 import service_account
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quizbot.config import BotConfig
from quizbot.entities import Base
from quizbot.errors import ConfigurationError

logger = logging.getLogger("quizbot")

GCP_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


def google_credentials():
    """Service-account key file when GOOGLE_APPLICATION_CREDENTIALS points at one, else ADC."""
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=GCP_SCOPES)
    creds, _ = google_auth_default(scopes=GCP_SCOPES)
    return creds


def read_secret(project_id: str, secret_id: str, version: str = "latest") -> str:
    """
    Latest version of a Secret Manager secret as text.
    Missing credentials or an API failure is a ConfigurationError: start-up cannot go on.
    """
    try:
        client = secretmanager.SecretManagerServiceClient(credentials=google_credentials())
        name = client.secret_version_path(project_id, secret_id, version)
        resp = client.access_secret_version(request={"name": name})
    except (GoogleAuthError, GoogleAPIError) as e:
        raise ConfigurationError(f"Could not read secret '{secret_id}' from Secret Manager: {e}")
    return resp.payload.data.decode("utf-8")


class DbConnection:
    """
    Engine + session factory for the durable progress store.

    You either give a full DATABASE_URL in the .env file or the DB_* parts;
    the parts always go through the pg8000 driver.
    """

    def __init__(self, config: BotConfig) -> None:
        self.config = config
        self.DB_PASSWORD = config.DB_PASSWORD
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None

        self.DATABASE_URL = config.DATABASE_URL
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+pg8000://{config.DB_USER}:{self._get_db_password_lazy()}"
                f"@{config.DB_HOST}:{config.DB_PORT}/{config.DB_NAME}"
            )

    # -------- DB password (Secret Manager) --------
    def _get_db_password_lazy(self) -> str:
        if not self.DB_PASSWORD:
            if not self.config.DB_SECRET_ID:
                raise ConfigurationError("No DB_PASSWORD and no Secret Manager configured")
            self.DB_PASSWORD = read_secret(self.config.PROJECT_ID, self.config.DB_SECRET_ID)
        return self.DB_PASSWORD

    # -------- SQLAlchemy engine / sessions --------
    def get_engine(self) -> Engine:
        if self._engine is None:
            safe_url = make_url(self.DATABASE_URL).render_as_string(hide_password=True)
            logger.info("[DB] Connecting to %s", safe_url)
            # pg8000 'timeout' is the socket timeout in seconds, so a dead server
            # fails the request instead of hanging it
            self._engine = create_engine(
                self.DATABASE_URL,
                future=True,
                pool_pre_ping=True,
                pool_timeout=self.config.STORE_TIMEOUT_SECONDS,
                connect_args={"timeout": self.config.DB_CONNECT_TIMEOUT_SECONDS},
            )
        return self._engine

    def build_db_session_factory(self) -> Callable[[], Session]:
        if self._sessionmaker is None:
            self._sessionmaker = sessionmaker(
                bind=self.get_engine(),
                autoflush=False,
                autocommit=False,
                future=True,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory

    def provision_schema(self) -> None:
        """
        Ping the database and create the user_progress table if missing.
        Any failure here is fatal for start-up.
        """
        try:
            engine = self.get_engine()
        except ImportError as e:
            # create_engine loads the DBAPI driver (pg8000) eagerly
            raise ConfigurationError(f"Database driver not available: {e}")
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Database initialisation failed: {e}")
        logger.info("[DB] Schema ready (table user_progress)")

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
