"""
Enrollment rules: who may join a tournament, and admin seed management.

All changes are only allowed while the tournament is accepting enrollments.
"""
import logging
from typing import List, Optional

from sqlmodel import Session, func, select

from rally.models.enrollment import Enrollment
from rally.models.player import Player
from rally.models.tournament import TOURNAMENT_ENROLLMENT, MatchType, Tournament
from rally.services.errors import NotFoundError, StateError, ValidationError
from rally.services.notifications import EVENT_ENROLLMENT_CHANGED, queue_event
from rally.utils.guards import require_tournament, require_tournament_status

logger = logging.getLogger(__name__)


def _find_player_enrollment(session: Session, tournament_id: int, player_id: int) -> Optional[Enrollment]:
    """Enrollment where the player appears either as player or as partner."""
    return session.exec(
        select(Enrollment).where(
            Enrollment.tournament_id == tournament_id,
            (Enrollment.player_id == player_id) | (Enrollment.partner_id == player_id),
        )
    ).first()


def _require_player(session: Session, player_id: int) -> Player:
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError(f"Player {player_id} not found", code="PLAYER_NOT_FOUND")
    return player


def enrollment_count(session: Session, tournament_id: int) -> int:
    return session.exec(select(func.count(Enrollment.id)).where(Enrollment.tournament_id == tournament_id)).one()


def _changed(session: Session, tournament: Tournament, player_id: int, action: str) -> None:
    session.flush()
    queue_event(
        session,
        EVENT_ENROLLMENT_CHANGED,
        tournament_id=tournament.id,
        player_id=player_id,
        action=action,
        enrollment_count=enrollment_count(session, tournament.id),
    )


def enroll(session: Session, tournament_id: int, player_id: int, partner_id: Optional[int] = None) -> Enrollment:
    tournament = require_tournament(session, tournament_id)
    if tournament.status != TOURNAMENT_ENROLLMENT:
        raise StateError("Tournament is not accepting enrollments", code="ENROLLMENT_CLOSED")
    _require_player(session, player_id)
    if _find_player_enrollment(session, tournament_id, player_id):
        raise ValidationError(f"Player {player_id} is already enrolled in this tournament", code="ALREADY_ENROLLED")

    if tournament.match_type == MatchType.doubles:
        if partner_id is None:
            raise ValidationError("Partner is required for doubles tournament", code="PARTNER_REQUIRED")
        if partner_id == player_id:
            raise ValidationError("A player cannot partner themselves", code="DUPLICATE_PLAYER")
        _require_player(session, partner_id)
        if _find_player_enrollment(session, tournament_id, partner_id):
            raise ValidationError(
                f"Partner {partner_id} is already enrolled in this tournament", code="ALREADY_ENROLLED"
            )
    else:
        partner_id = None

    if tournament.max_participants is not None and enrollment_count(session, tournament_id) >= tournament.max_participants:
        raise StateError("Tournament is full", code="TOURNAMENT_FULL")

    enrollment = Enrollment(tournament_id=tournament_id, player_id=player_id, partner_id=partner_id)
    session.add(enrollment)
    _changed(session, tournament, player_id, "enrolled")
    logger.info(f"Player {player_id} enrolled in tournament {tournament_id} (partner={partner_id})")
    return enrollment


def withdraw(session: Session, tournament_id: int, player_id: int) -> None:
    tournament = require_tournament(session, tournament_id)
    if tournament.status != TOURNAMENT_ENROLLMENT:
        raise StateError("Cannot withdraw: tournament has already started", code="ENROLLMENT_CLOSED")
    enrollment = _find_player_enrollment(session, tournament_id, player_id)
    if not enrollment:
        raise NotFoundError(f"Player {player_id} is not enrolled in this tournament", code="ENROLLMENT_NOT_FOUND")
    session.delete(enrollment)
    _changed(session, tournament, player_id, "withdrew")


def list_enrollments(session: Session, tournament_id: int) -> List[Enrollment]:
    require_tournament(session, tournament_id)
    return list(
        session.exec(
            select(Enrollment).where(Enrollment.tournament_id == tournament_id).order_by(Enrollment.seed, Enrollment.id)
        ).all()
    )


def _require_open_enrollment(session: Session, enrollment_id: int) -> Enrollment:
    enrollment = session.get(Enrollment, enrollment_id)
    if not enrollment:
        raise NotFoundError(f"Enrollment {enrollment_id} not found", code="ENROLLMENT_NOT_FOUND")
    tournament = require_tournament(session, enrollment.tournament_id)
    require_tournament_status(tournament, TOURNAMENT_ENROLLMENT, action="modify seeds or entries")
    return enrollment


def admin_set_seed(session: Session, enrollment_id: int, seed: int) -> Enrollment:
    if seed < 1:
        raise ValidationError("Seed must be 1 or greater", code="INVALID_SEED")
    enrollment = _require_open_enrollment(session, enrollment_id)
    enrollment.seed = seed
    enrollment.seed_overridden = True
    session.add(enrollment)
    return enrollment


def admin_swap_seeds(session: Session, first_id: int, second_id: int) -> List[Enrollment]:
    first = _require_open_enrollment(session, first_id)
    second = _require_open_enrollment(session, second_id)
    if first.tournament_id != second.tournament_id:
        raise ValidationError("Enrollments must be in the same tournament", code="DIFFERENT_TOURNAMENTS")
    first.seed, second.seed = second.seed, first.seed
    first.seed_overridden = True
    second.seed_overridden = True
    session.add(first)
    session.add(second)
    return [first, second]


def admin_remove_enrollment(session: Session, enrollment_id: int) -> None:
    enrollment = _require_open_enrollment(session, enrollment_id)
    tournament = require_tournament(session, enrollment.tournament_id)
    player_id = enrollment.player_id
    session.delete(enrollment)
    _changed(session, tournament, player_id, "removed")
