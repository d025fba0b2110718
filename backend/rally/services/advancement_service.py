"""
Advancement: when a match reaches a terminal status, fill the downstream slots
that reference it with its winner or loser, flip readiness, and cascade byes.

A downstream slot is in one of three states:
  filled   participant known
  waiting  source match not terminal yet
  dead     source is terminal but produced nobody for this role
           (a bye or a disqualification walkover has no loser; an empty bye
           has no winner)
One dead slot turns the match into a bye for the other side; two dead slots
make an empty bye that propagates nothing.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from rally.models.enrollment import Enrollment
from rally.models.match import (
    MATCH_BYE,
    MATCH_PENDING,
    MATCH_READY,
    MATCH_WALKOVER,
    ROLE_LOSER,
    TERMINAL_STATUSES,
    TournamentMatch,
)
from rally.models.tournament import Tournament
from rally.services.errors import StateError, ValidationError

logger = logging.getLogger(__name__)

SLOT_FILLED = "filled"
SLOT_WAITING = "waiting"
SLOT_DEAD = "dead"


def source_output(
    session: Session, source: Optional[TournamentMatch], role: Optional[str]
) -> Tuple[str, Optional[int]]:
    """What a source match hands to a slot with the given role."""
    if source is None or source.status not in TERMINAL_STATUSES:
        return SLOT_WAITING, None
    if role == ROLE_LOSER:
        if source.status == MATCH_BYE:
            return SLOT_DEAD, None
        loser = source.loser_id()
        if loser is None:
            return SLOT_DEAD, None
        if source.status == MATCH_WALKOVER:
            # a disqualified loser is out of the event
            enrollment = session.get(Enrollment, loser)
            if enrollment is None or not enrollment.is_active:
                return SLOT_DEAD, None
        return SLOT_FILLED, loser
    if source.winner_id is None:
        return SLOT_DEAD, None
    return SLOT_FILLED, source.winner_id


def _slot_state(
    session: Session, participant_id: Optional[int], source_id: Optional[int], role: Optional[str]
) -> Tuple[str, Optional[int]]:
    if participant_id is not None:
        return SLOT_FILLED, participant_id
    if source_id is None:
        return SLOT_DEAD, None
    return source_output(session, session.get(TournamentMatch, source_id), role)


def _resolve_as_bye(match: TournamentMatch, winner_id: Optional[int]) -> None:
    match.status = MATCH_BYE
    match.winner_id = winner_id
    if winner_id is not None and match.participant_a_id is None:
        match.participant_a_id, match.participant_b_id = winner_id, None
    match.is_next_match = False


def evaluate_match(session: Session, match: TournamentMatch) -> Tuple[int, bool]:
    """
    Re-derive one non-terminal match from its sources.

    Returns (slots_filled, became_terminal). Idempotent: a filled slot is never
    overwritten and a terminal match is left alone.
    """
    if match.status not in (MATCH_PENDING, MATCH_READY):
        return 0, False

    filled = 0

    # Bracket reset is only played when the grand final went to the losers-bracket side
    if match.is_bracket_reset and match.source_match_a_id is not None:
        grand_final = session.get(TournamentMatch, match.source_match_a_id)
        if (
            grand_final is not None
            and grand_final.status in TERMINAL_STATUSES
            and grand_final.winner_id is not None
            and grand_final.winner_id == grand_final.participant_a_id
        ):
            _resolve_as_bye(match, grand_final.winner_id)
            session.add(match)
            logger.info(f"Bracket reset {match.id} not needed; winners-bracket champion took the grand final")
            return 1, True

    state_a, value_a = _slot_state(session, match.participant_a_id, match.source_match_a_id, match.source_a_role)
    state_b, value_b = _slot_state(session, match.participant_b_id, match.source_match_b_id, match.source_b_role)

    if state_a == SLOT_FILLED and match.participant_a_id is None:
        match.participant_a_id = value_a
        filled += 1
    if state_b == SLOT_FILLED and match.participant_b_id is None:
        match.participant_b_id = value_b
        filled += 1

    became_terminal = False
    if state_a == SLOT_FILLED and state_b == SLOT_FILLED:
        if match.status == MATCH_PENDING:
            match.status = MATCH_READY
    elif SLOT_WAITING in (state_a, state_b):
        pass
    elif state_a == SLOT_DEAD and state_b == SLOT_DEAD:
        _resolve_as_bye(match, None)
        became_terminal = True
    else:
        _resolve_as_bye(match, value_a if state_a == SLOT_FILLED else value_b)
        became_terminal = True

    if filled or became_terminal or match.status == MATCH_READY:
        session.add(match)
    return filled, became_terminal


def downstream_matches(session: Session, match: TournamentMatch) -> List[TournamentMatch]:
    return list(
        session.exec(
            select(TournamentMatch)
            .where(
                TournamentMatch.tournament_id == match.tournament_id,
                (TournamentMatch.source_match_a_id == match.id) | (TournamentMatch.source_match_b_id == match.id),
            )
            .order_by(TournamentMatch.round_number, TournamentMatch.position)
        ).all()
    )


def apply_advancement_for_final_match(session: Session, match_id: int) -> int:
    """
    Given a terminal match, push its winner/loser into every downstream match
    that lists it as a source, and cascade any byes this produces.
    Returns count of downstream slots filled (including the cascade).
    Idempotent: calling twice produces the same state.
    """
    match = session.get(TournamentMatch, match_id)
    if not match or match.status not in TERMINAL_STATUSES:
        return 0

    updated_count = 0
    for down in downstream_matches(session, match):
        filled, became_terminal = evaluate_match(session, down)
        updated_count += filled
        if became_terminal:
            logger.debug(f"Match {down.id} resolved as bye (winner={down.winner_id}); cascading")
            updated_count += apply_advancement_for_final_match(session, down.id)
    return updated_count


def cascade_byes(session: Session, tournament_id: int) -> int:
    """Propagate every bye present right after generation."""
    byes = session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id, TournamentMatch.status == MATCH_BYE)
        .order_by(TournamentMatch.id)
    ).all()
    return sum(apply_advancement_for_final_match(session, bye.id) for bye in byes)


def resolve_all_dependencies(session: Session, tournament_id: int) -> Dict:
    """
    Bulk repair: re-run advancement for every terminal match of a tournament.

    Returns:
        Dict with:
        - matches_processed: number of terminal matches processed
        - slots_filled: total number of downstream slots filled
        - unknown_before: count of matches with an empty slot before
        - unknown_after: count of matches with an empty slot after

    Guarantees:
        - Idempotent (safe to call multiple times)
        - Deterministic ordering (processes by match id)
    """
    def count_unknown() -> int:
        rows = session.exec(select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)).all()
        return sum(
            1
            for m in rows
            if m.status not in TERMINAL_STATUSES and (m.participant_a_id is None or m.participant_b_id is None)
        )

    unknown_before = count_unknown()

    terminal = session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id, TournamentMatch.status.in_(TERMINAL_STATUSES))
        .order_by(TournamentMatch.id)
    ).all()

    matches_processed = 0
    slots_filled = 0
    for match in terminal:
        slots_filled += apply_advancement_for_final_match(session, match.id)
        matches_processed += 1

    session.flush()
    unknown_after = count_unknown()

    return {
        "matches_processed": matches_processed,
        "slots_filled": slots_filled,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }


# =============================================================================
# Next match
# =============================================================================

def _clear_next_flags(session: Session, tournament_id: int) -> None:
    flagged = session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == tournament_id, TournamentMatch.is_next_match == True  # noqa: E712
        )
    ).all()
    for m in flagged:
        m.is_next_match = False
        session.add(m)


def select_next_match(session: Session, tournament_id: int) -> Optional[TournamentMatch]:
    """Flag the ready match with the lowest round number, then lowest position."""
    _clear_next_flags(session, tournament_id)
    nxt = session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id, TournamentMatch.status == MATCH_READY)
        .order_by(TournamentMatch.round_number, TournamentMatch.position, TournamentMatch.id)
    ).first()
    if nxt is not None:
        nxt.is_next_match = True
        session.add(nxt)
    return nxt


def set_next_match(session: Session, tournament_id: int, match_id: int) -> TournamentMatch:
    """Operator pin: only a ready match of this tournament can be next."""
    match = session.get(TournamentMatch, match_id)
    if not match or match.tournament_id != tournament_id:
        raise ValidationError(
            f"Match {match_id} does not belong to tournament {tournament_id}", code="MATCH_NOT_IN_TOURNAMENT"
        )
    if match.status != MATCH_READY:
        raise StateError(f"Only a ready match can be next, match {match_id} is '{match.status}'", code="MATCH_NOT_READY")
    _clear_next_flags(session, tournament_id)
    match.is_next_match = True
    session.add(match)
    return match


def refresh_current_round(session: Session, tournament: Tournament) -> Optional[int]:
    """Current round = lowest round number that still has a non-terminal match."""
    open_match = session.exec(
        select(TournamentMatch)
        .where(
            TournamentMatch.tournament_id == tournament.id,
            TournamentMatch.status.not_in(TERMINAL_STATUSES),
        )
        .order_by(TournamentMatch.round_number)
    ).first()
    if open_match is not None:
        tournament.current_round = open_match.round_number
    else:
        last = session.exec(
            select(TournamentMatch)
            .where(TournamentMatch.tournament_id == tournament.id)
            .order_by(TournamentMatch.round_number.desc())
        ).first()
        tournament.current_round = last.round_number if last else None
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    return tournament.current_round
