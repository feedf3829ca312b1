"""Database helpers for the Warehouse API.

Utilities provided:
- initialize the SQLAlchemy engine
- create sessions
- run a block of work as one transaction

``DATABASE_URL`` selects any SQLAlchemy database. Without it a local SQLite
file is used, `database/database.db` by default (configurable via the
`SQLITE_FILE` environment variable). The parent directory of the SQLite file
is created before the engine so the database can be created on first use.

Copyright (c) Bryn Gwalad 2025
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session, SQLModel, create_engine

from .exceptions import ConflictError

# Load environment variables from .env if present
load_dotenv()

# Register table models on SQLModel.metadata before create_all runs.
from . import models  # noqa: F401


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    sqlite_file_name = os.getenv("SQLITE_FILE", "database/database.db")
    Path(sqlite_file_name).parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{sqlite_file_name}"


def make_engine(url: str, echo: bool = False):
    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a thread pool
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = make_engine(database_url())


def init_db() -> None:
    """Create database tables from SQLModel metadata."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    return Session(engine)


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit the work done inside the block, or roll all of it back.

    Item rows and their quantity history are always written inside one of
    these blocks so neither is committed without the other. A write based on
    a stale copy of a versioned row surfaces as ``ConflictError``.
    """
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConflictError("record was changed by another request; reload and retry") from exc
    except Exception:
        session.rollback()
        raise
