import os
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rally.db")

_is_sqlite = DATABASE_URL.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=_echo,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """One session per request; closed when the request ends."""
    with Session(engine) as session:
        yield session


def import_models() -> None:
    """Load every rally table onto SQLModel.metadata."""
    from rally.models.enrollment import Enrollment  # noqa: F401
    from rally.models.game_result import GameResult  # noqa: F401
    from rally.models.group import TournamentGroup  # noqa: F401
    from rally.models.match import TournamentMatch  # noqa: F401
    from rally.models.player import Player  # noqa: F401
    from rally.models.round import Round  # noqa: F401
    from rally.models.tournament import Tournament  # noqa: F401


def init_db() -> None:
    """Create any missing rally tables on the configured database."""
    import_models()
    SQLModel.metadata.create_all(engine)
