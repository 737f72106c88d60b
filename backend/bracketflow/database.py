import os
from pathlib import Path
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bracketflow.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for *url*.

    SQLite files get their parent directory created. An in-memory SQLite
    database is held on a single shared connection so every session sees
    the same tables.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url:
        kwargs["poolclass"] = StaticPool
    else:
        Path(url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, **kwargs)


engine: Engine = build_engine(DATABASE_URL, echo=SQL_ECHO)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


def register_models() -> None:
    """Import every table model so SQLModel.metadata knows about it"""
    from bracketflow.models.match import Match  # noqa: F401
    from bracketflow.models.prediction import Prediction  # noqa: F401
    from bracketflow.models.stage import Stage  # noqa: F401
    from bracketflow.models.tournament import Tournament  # noqa: F401


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables on *bind* (the app engine by default)"""
    register_models()
    SQLModel.metadata.create_all(bind or engine)
