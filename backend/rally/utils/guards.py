"""
State guards shared by the tournament services.

Provides:
- Lookups that raise NotFoundError
- Status requirements
- compare_and_set_status: the single conditional-update primitive used to
  serialize competing requests on a tournament or match row
"""

import logging
from typing import Iterable, Type, TypeVar, Union

from sqlalchemy import update
from sqlmodel import Session, SQLModel

from rally.models.match import TournamentMatch
from rally.models.tournament import Tournament
from rally.services.errors import NotFoundError, StateError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


def require_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found", code="TOURNAMENT_NOT_FOUND")
    return tournament


def require_match(session: Session, match_id: int) -> TournamentMatch:
    match = session.get(TournamentMatch, match_id)
    if not match:
        raise NotFoundError(f"Tournament match {match_id} not found", code="MATCH_NOT_FOUND")
    return match


def require_tournament_status(tournament: Tournament, *allowed: str, action: str) -> None:
    if tournament.status not in allowed:
        raise StateError(
            f"Cannot {action} while tournament is '{tournament.status}' (requires {' or '.join(allowed)})",
            code="TOURNAMENT_WRONG_STATUS",
        )


def compare_and_set_status(
    session: Session,
    model: Type[ModelT],
    row_id: int,
    expected: Union[str, Iterable[str]],
    new_status: str,
) -> bool:
    """
    UPDATE <model> SET status = new_status WHERE id = row_id AND status IN expected.

    Runs inside the caller's transaction. Returns True when this caller won the
    transition. The in-session instance is refreshed so ORM state matches the row.
    """
    expected_values = [expected] if isinstance(expected, str) else list(expected)
    stmt = (
        update(model)
        .where(model.id == row_id, model.status.in_(expected_values))
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    won = result.rowcount == 1
    instance = session.get(model, row_id)
    if instance is not None:
        session.refresh(instance, attribute_names=["status"])
    if not won:
        logger.warning(
            "Compare-and-set lost: %s %s expected %s -> %s",
            model.__name__,
            row_id,
            expected_values,
            new_status,
        )
    return won
