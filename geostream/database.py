from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlmodel import Session, SQLModel, create_engine

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR_ENV = "GEOSTREAM_DATA_DIR"
DATABASE_URL_ENV = "GEOSTREAM_DATABASE_URL"


def _determine_data_dir() -> Path:
    override = os.getenv(DATA_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return BASE_DIR / "data"


def _database_url(data_dir: Path) -> str:
    override = os.getenv(DATABASE_URL_ENV, "").strip()
    if override:
        return override
    return f"sqlite:///{data_dir / 'geostream.db'}"


DATA_DIR = _determine_data_dir()
DATA_DIR.mkdir(parents=True, exist_ok=True)

DATABASE_URL = _database_url(DATA_DIR)

engine = create_engine(
    DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)


def init_db() -> None:
    """Create the usage ledger tables when missing."""

    from . import models  # noqa: F401 registers FetchRunStat

    SQLModel.metadata.create_all(engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session bound to the current engine."""

    with Session(engine) as session:
        yield session
