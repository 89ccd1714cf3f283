"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass, field
from typing import FrozenSet


def _split_ids(raw: str) -> FrozenSet[str]:
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./clubs.db"
    confirmation_window_days: int = 5
    max_document_bytes: int = 20 * 1024 * 1024
    staff_user_ids: FrozenSet[str] = field(default_factory=frozenset)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", "sqlite:///./clubs.db")

        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        return cls(
            database_url=database_url,
            confirmation_window_days=int(os.getenv("CONFIRMATION_WINDOW_DAYS", "5")),
            max_document_bytes=int(os.getenv("MAX_DOCUMENT_BYTES", str(20 * 1024 * 1024))),
            staff_user_ids=_split_ids(os.getenv("STAFF_USER_IDS", "")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


settings = Settings.from_env()
