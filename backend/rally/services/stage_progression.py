"""
Stage progression: tournament status machine, stage generation and completion.

    draft → enrollment → in_progress → completed
    draft | enrollment → cancelled

Every function here mutates the caller's session and never commits; the route
owns the transaction so a failed generation leaves nothing behind.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from rally.models.enrollment import Enrollment
from rally.models.group import TournamentGroup
from rally.models.match import MATCH_BYE, TERMINAL_STATUSES, TournamentMatch
from rally.models.player import Player
from rally.models.round import SEGMENT_FINALS, SEGMENT_GROUP, SEGMENT_SWISS, SEGMENT_WINNERS, Round
from rally.models.tournament import (
    TOURNAMENT_CANCELLED,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_DRAFT,
    TOURNAMENT_ENROLLMENT,
    TOURNAMENT_IN_PROGRESS,
    Tournament,
    TournamentFormat,
)
from rally.services import bracket_generator as generator
from rally.services import bracket_rules as rules
from rally.services.advancement_service import cascade_byes, refresh_current_round, select_next_match
from rally.services.best_of import round_default_best_of
from rally.services.bracket_generator import BracketPlan, SlotSource
from rally.services.errors import RaceLostError, StateError, ValidationError
from rally.services.notifications import (
    EVENT_TOURNAMENT_COMPLETED,
    EVENT_TOURNAMENT_STARTED,
    queue_achievement_check,
    queue_event,
)
from rally.utils.guards import compare_and_set_status, require_tournament, require_tournament_status
from rally.utils.seeding import SeedEntry, participant_rating, sort_by_seed
from rally.utils.standings import GroupRecord, SwissRecord, rank_group, rank_swiss

logger = logging.getLogger(__name__)

SWISS_WIN_POINTS = 3
GROUP_WIN_POINTS = 3

ELIMINATION_FORMATS = (TournamentFormat.single_elimination, TournamentFormat.double_elimination)


@dataclass
class StageResult:
    tournament_id: int
    rounds_created: int
    matches_created: int
    total_rounds: Optional[int]
    completed: bool = False


# =============================================================================
# Status machine
# =============================================================================

def open_enrollment(session: Session, tournament_id: int) -> Tournament:
    tournament = require_tournament(session, tournament_id)
    require_tournament_status(tournament, TOURNAMENT_DRAFT, action="open enrollment")
    tournament.status = TOURNAMENT_ENROLLMENT
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    return tournament


def cancel_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = require_tournament(session, tournament_id)
    require_tournament_status(tournament, TOURNAMENT_DRAFT, TOURNAMENT_ENROLLMENT, action="cancel")
    if not compare_and_set_status(
        session, Tournament, tournament_id, [TOURNAMENT_DRAFT, TOURNAMENT_ENROLLMENT], TOURNAMENT_CANCELLED
    ):
        raise RaceLostError("Tournament status changed while cancelling", code="TOURNAMENT_RACE_LOST")
    return tournament


def delete_tournament(session: Session, tournament_id: int) -> None:
    tournament = require_tournament(session, tournament_id)
    require_tournament_status(tournament, TOURNAMENT_DRAFT, TOURNAMENT_CANCELLED, action="delete")
    for enrollment in session.exec(select(Enrollment).where(Enrollment.tournament_id == tournament_id)).all():
        session.delete(enrollment)
    for group in session.exec(select(TournamentGroup).where(TournamentGroup.tournament_id == tournament_id)).all():
        session.delete(group)
    session.delete(tournament)


# =============================================================================
# Helpers
# =============================================================================

def active_enrollments(session: Session, tournament_id: int) -> List[Enrollment]:
    return list(
        session.exec(
            select(Enrollment)
            .where(Enrollment.tournament_id == tournament_id, Enrollment.is_active == True)  # noqa: E712
            .order_by(Enrollment.id)
        ).all()
    )


def enrollment_ratings(session: Session, enrollments: Sequence[Enrollment]) -> Dict[int, int]:
    ratings: Dict[int, int] = {}
    for e in enrollments:
        player = session.get(Player, e.player_id)
        partner = session.get(Player, e.partner_id) if e.partner_id else None
        ratings[e.id] = participant_rating(player.rating, partner.rating if partner else None)
    return ratings


def enrollment_player_ids(enrollment: Enrollment) -> List[int]:
    return [pid for pid in (enrollment.player_id, enrollment.partner_id) if pid is not None]


def persist_plan(
    session: Session,
    tournament: Tournament,
    plan: BracketPlan,
    group_ids: Optional[Sequence[int]] = None,
) -> Tuple[int, int]:
    """
    Write a plan as Round and TournamentMatch rows, then resolve every
    SlotSource to the id of the match created for it.

    Returns (rounds_created, matches_created).
    """
    created: Dict[Tuple[int, str, int], TournamentMatch] = {}
    pending_sources: List[Tuple[TournamentMatch, Optional[SlotSource], Optional[SlotSource]]] = []

    for planned_round in plan.rounds:
        db_round = Round(
            tournament_id=tournament.id,
            round_number=planned_round.round_number,
            name=planned_round.name,
            bracket_segment=planned_round.segment,
            elo_multiplier=planned_round.multiplier,
            best_of=round_default_best_of(planned_round.name, planned_round.segment, tournament),
        )
        session.add(db_round)
        session.flush()

        for pm in planned_round.matches:
            match = TournamentMatch(
                tournament_id=tournament.id,
                round_id=db_round.id,
                round_number=planned_round.round_number,
                position=pm.position,
                bracket_segment=planned_round.segment,
                participant_a_id=pm.participant_a,
                participant_b_id=pm.participant_b,
                winner_id=pm.winner,
                status=pm.status,
                elo_multiplier=planned_round.multiplier,
                is_bracket_reset=pm.is_bracket_reset,
                group_id=group_ids[pm.group_index] if group_ids is not None and pm.group_index is not None else None,
            )
            session.add(match)
            created[(planned_round.round_number, planned_round.segment, pm.position)] = match
            pending_sources.append((match, pm.source_a, pm.source_b))

    session.flush()

    def resolve(source: SlotSource) -> int:
        key = (source.round_number, source.segment, source.position)
        if key not in created:
            raise ValidationError(f"Bracket plan references missing match {key}", code="INVALID_BRACKET_PLAN")
        return created[key].id

    for match, source_a, source_b in pending_sources:
        if source_a is not None:
            match.source_match_a_id = resolve(source_a)
            match.source_a_role = source_a.role
        if source_b is not None:
            match.source_match_b_id = resolve(source_b)
            match.source_b_role = source_b.role
        session.add(match)
    session.flush()

    return len(plan.rounds), len(created)


def _credit_swiss_byes(session: Session, tournament_id: int, round_number: int) -> None:
    byes = session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == tournament_id,
            TournamentMatch.round_number == round_number,
            TournamentMatch.bracket_segment == SEGMENT_SWISS,
            TournamentMatch.status == MATCH_BYE,
        )
    ).all()
    for bye in byes:
        enrollment = session.get(Enrollment, bye.winner_id)
        enrollment.swiss_points += SWISS_WIN_POINTS
        enrollment.swiss_bye_count += 1
        session.add(enrollment)


def _rounds(session: Session, tournament_id: int, *segments: str) -> List[Round]:
    stmt = select(Round).where(Round.tournament_id == tournament_id)
    if segments:
        stmt = stmt.where(Round.bracket_segment.in_(segments))
    return list(session.exec(stmt.order_by(Round.round_number)).all())


def _round_matches(session: Session, round_id: int) -> List[TournamentMatch]:
    return list(
        session.exec(
            select(TournamentMatch).where(TournamentMatch.round_id == round_id).order_by(TournamentMatch.position)
        ).all()
    )


def _all_terminal(matches: Sequence[TournamentMatch]) -> bool:
    return all(m.status in TERMINAL_STATUSES for m in matches)


def _segment_matches(session: Session, tournament_id: int, segment: str) -> List[TournamentMatch]:
    return list(
        session.exec(
            select(TournamentMatch).where(
                TournamentMatch.tournament_id == tournament_id, TournamentMatch.bracket_segment == segment
            )
        ).all()
    )


# =============================================================================
# Start
# =============================================================================

def start_tournament(session: Session, tournament_id: int) -> StageResult:
    """
    Seed the field and generate the opening stage.

    The enrollment → in_progress transition is a compare-and-set; a caller
    that loses it gets RaceLostError and generates nothing.
    """
    tournament = require_tournament(session, tournament_id)
    require_tournament_status(tournament, TOURNAMENT_ENROLLMENT, action="start tournament")

    enrollments = active_enrollments(session, tournament_id)
    if len(enrollments) < rules.MIN_PARTICIPANTS:
        raise ValidationError(
            f"At least {rules.MIN_PARTICIPANTS} enrollments are required to start, got {len(enrollments)}",
            code="NOT_ENOUGH_PARTICIPANTS",
        )
    if tournament.format == TournamentFormat.swiss and tournament.swiss_rounds:
        if tournament.swiss_rounds > len(enrollments) - 1:
            raise ValidationError(
                f"{len(enrollments)} enrollments can play at most {len(enrollments) - 1} Swiss rounds "
                f"without a rematch, got {tournament.swiss_rounds}",
                code="TOO_MANY_SWISS_ROUNDS",
            )

    if not compare_and_set_status(session, Tournament, tournament_id, TOURNAMENT_ENROLLMENT, TOURNAMENT_IN_PROGRESS):
        raise RaceLostError("Tournament is already being started by another request", code="TOURNAMENT_RACE_LOST")

    ratings = enrollment_ratings(session, enrollments)
    by_id = {e.id: e for e in enrollments}
    ordered = sort_by_seed(
        [SeedEntry(e.id, ratings[e.id], seed=e.seed, seed_overridden=e.seed_overridden) for e in enrollments]
    )
    seeded = [entry.enrollment_id for entry in ordered]
    for index, entry_id in enumerate(seeded, start=1):
        by_id[entry_id].seed = index
        session.add(by_id[entry_id])

    base = tournament.base_elo_multiplier
    final = tournament.finals_elo_multiplier
    group_ids: Optional[List[int]] = None

    if tournament.format == TournamentFormat.single_elimination:
        plan = generator.generate_single_elimination(seeded, base, final)
        total_rounds = plan.total_rounds
    elif tournament.format == TournamentFormat.double_elimination:
        plan = generator.generate_double_elimination(
            seeded, base, final, grand_final_reset=tournament.grand_final_reset
        )
        total_rounds = plan.total_rounds
    elif tournament.format == TournamentFormat.swiss:
        total_rounds = tournament.swiss_rounds or rules.default_swiss_rounds(len(seeded))
        records = [SwissRecord(entry_id, 0, ratings[entry_id]) for entry_id in seeded]
        plan = generator.generate_swiss_round(records, 1, total_rounds, base, final)
    elif tournament.format == TournamentFormat.round_robin_knockout:
        group_count = rules.resolve_group_count(len(seeded), tournament.group_count)
        advance = tournament.advance_per_group or rules.DEFAULT_ADVANCE_PER_GROUP
        plan = generator.generate_round_robin_groups(seeded, group_count, advance, base)
        group_ids = _create_groups(session, tournament, plan.groups, by_id)
        total_rounds = plan.total_rounds
    else:
        raise ValidationError(f"Unknown tournament format '{tournament.format}'", code="INVALID_FORMAT")

    rounds_created, matches_created = persist_plan(session, tournament, plan, group_ids)
    if tournament.format == TournamentFormat.swiss:
        _credit_swiss_byes(session, tournament.id, 1)
    cascade_byes(session, tournament.id)

    tournament.total_rounds = total_rounds
    tournament.started_at = datetime.utcnow()
    session.add(tournament)
    refresh_current_round(session, tournament)
    select_next_match(session, tournament.id)

    logger.info(
        f"Tournament {tournament.id} started: format={tournament.format}, "
        f"participants={len(seeded)}, rounds={rounds_created}, matches={matches_created}"
    )
    queue_event(
        session,
        EVENT_TOURNAMENT_STARTED,
        tournament_id=tournament.id,
        participants=len(seeded),
        total_rounds=total_rounds,
    )
    return StageResult(tournament.id, rounds_created, matches_created, total_rounds)


def _create_groups(
    session: Session, tournament: Tournament, groups: Sequence[Sequence[int]], by_id: Dict[int, Enrollment]
) -> List[int]:
    ids: List[int] = []
    for index, members in enumerate(groups):
        group = TournamentGroup(tournament_id=tournament.id, name=rules.group_name(index), display_order=index)
        session.add(group)
        session.flush()
        ids.append(group.id)
        for entry_id in members:
            enrollment = by_id[entry_id]
            enrollment.group_id = group.id
            session.add(enrollment)
    return ids


# =============================================================================
# Swiss
# =============================================================================

def generate_next_swiss_round(session: Session, tournament_id: int) -> StageResult:
    tournament = require_tournament(session, tournament_id)
    if tournament.format != TournamentFormat.swiss:
        raise StateError("Next round can only be generated for Swiss tournaments", code="NOT_SWISS")
    require_tournament_status(tournament, TOURNAMENT_IN_PROGRESS, action="generate the next Swiss round")

    swiss_rounds = _rounds(session, tournament_id, SEGMENT_SWISS)
    current = swiss_rounds[-1] if swiss_rounds else None
    if current is not None and not _all_terminal(_round_matches(session, current.id)):
        raise StateError(f"Swiss round {current.round_number} is not finished", code="ROUND_NOT_COMPLETE")
    next_number = (current.round_number if current else 0) + 1
    total_rounds = tournament.total_rounds or 0
    if next_number > total_rounds:
        raise StateError(f"All {total_rounds} Swiss rounds have been generated", code="NO_ROUNDS_REMAINING")

    enrollments = active_enrollments(session, tournament_id)
    ratings = enrollment_ratings(session, enrollments)
    records = [
        SwissRecord(
            enrollment_id=e.id,
            points=e.swiss_points,
            rating=ratings[e.id],
            opponents=tuple(e.swiss_opponents or []),
            bye_count=e.swiss_bye_count,
        )
        for e in enrollments
    ]
    plan = generator.generate_swiss_round(
        records, next_number, total_rounds, tournament.base_elo_multiplier, tournament.finals_elo_multiplier
    )
    rounds_created, matches_created = persist_plan(session, tournament, plan)
    _credit_swiss_byes(session, tournament.id, next_number)

    refresh_current_round(session, tournament)
    select_next_match(session, tournament.id)
    logger.info(f"Tournament {tournament.id}: Swiss round {next_number}/{total_rounds} generated ({matches_created} matches)")

    # A round made only of byes is already over
    completed = check_completion(session, tournament)
    return StageResult(tournament.id, rounds_created, matches_created, total_rounds, completed=completed)


# =============================================================================
# Round robin → knockout
# =============================================================================

def group_standings(session: Session, tournament_id: int) -> Dict[int, List[GroupRecord]]:
    """Ranked records per group id (points, wins, point differential, rating)."""
    enrollments = list(
        session.exec(
            select(Enrollment).where(Enrollment.tournament_id == tournament_id, Enrollment.group_id.is_not(None))
        ).all()
    )
    ratings = enrollment_ratings(session, enrollments)
    grouped: Dict[int, List[GroupRecord]] = {}
    for e in enrollments:
        grouped.setdefault(e.group_id, []).append(
            GroupRecord(
                enrollment_id=e.id,
                points=e.group_points,
                wins=e.group_wins,
                losses=e.group_losses,
                point_diff=e.group_point_diff,
                rating=ratings[e.id],
            )
        )
    return {group_id: rank_group(records) for group_id, records in grouped.items()}


def _knockout_exists(session: Session, tournament_id: int) -> bool:
    return bool(_rounds(session, tournament_id, SEGMENT_WINNERS, SEGMENT_FINALS))


def generate_knockout_stage(session: Session, tournament_id: int) -> StageResult:
    tournament = require_tournament(session, tournament_id)
    if tournament.format != TournamentFormat.round_robin_knockout:
        raise StateError("Knockout stage only exists for round-robin tournaments", code="NOT_ROUND_ROBIN")
    require_tournament_status(tournament, TOURNAMENT_IN_PROGRESS, action="generate the knockout stage")
    if _knockout_exists(session, tournament_id):
        raise StateError("Knockout stage has already been generated", code="KNOCKOUT_EXISTS")
    group_matches = _segment_matches(session, tournament_id, SEGMENT_GROUP)
    if not group_matches or not _all_terminal(group_matches):
        raise StateError("Group stage is not complete", code="GROUP_STAGE_NOT_COMPLETE")
    return _advance_from_groups(session, tournament)


def _advance_from_groups(session: Session, tournament: Tournament) -> StageResult:
    standings = group_standings(session, tournament.id)
    groups = session.exec(
        select(TournamentGroup)
        .where(TournamentGroup.tournament_id == tournament.id)
        .order_by(TournamentGroup.display_order)
    ).all()
    advance = tournament.advance_per_group or rules.DEFAULT_ADVANCE_PER_GROUP

    if advance * len(groups) <= 1:
        ranked = [record.enrollment_id for group in groups for record in standings.get(group.id, [])]
        _complete(session, tournament, ranked)
        return StageResult(tournament.id, 0, 0, tournament.total_rounds, completed=True)

    # (placement in group, rating) decides knockout seeding; the tree keeps this order
    qualifiers: List[Tuple[int, int, int]] = []
    for group in groups:
        for placement, record in enumerate(standings.get(group.id, [])[:advance], start=1):
            qualifiers.append((placement, -record.rating, record.enrollment_id))
    seeded = [entry_id for _, _, entry_id in sorted(qualifiers)]

    last_round = max((r.round_number for r in _rounds(session, tournament.id)), default=0)
    plan = generator.generate_knockout(
        seeded, tournament.base_elo_multiplier, tournament.finals_elo_multiplier, last_round + 1
    )
    rounds_created, matches_created = persist_plan(session, tournament, plan)
    cascade_byes(session, tournament.id)

    tournament.total_rounds = last_round + plan.total_rounds
    session.add(tournament)
    refresh_current_round(session, tournament)
    select_next_match(session, tournament.id)
    logger.info(
        f"Tournament {tournament.id}: knockout generated with {len(seeded)} qualifiers, {plan.total_rounds} rounds"
    )
    return StageResult(tournament.id, rounds_created, matches_created, tournament.total_rounds)


# =============================================================================
# Completion
# =============================================================================

def _elimination_placements(session: Session, tournament_id: int) -> Optional[List[int]]:
    """[champion, runner-up] once the highest finals round is fully terminal, else None."""
    finals_rounds = _rounds(session, tournament_id, SEGMENT_FINALS)
    if not finals_rounds:
        return None
    last = finals_rounds[-1]
    if not _all_terminal(_round_matches(session, last.id)):
        return None

    finals_matches: List[TournamentMatch] = []
    for r in reversed(finals_rounds):
        finals_matches.extend(_round_matches(session, r.id))
    champion = next((m.winner_id for m in finals_matches if m.winner_id is not None), None)
    runner_up = next((m.loser_id() for m in finals_matches if m.loser_id() is not None), None)
    return [pid for pid in (champion, runner_up) if pid is not None]


def check_completion(session: Session, tournament: Tournament) -> bool:
    """
    Detect the end of the current stage and either finish the tournament or
    generate the next stage. Returns True when the tournament completed.
    """
    if tournament.status != TOURNAMENT_IN_PROGRESS:
        return False

    if tournament.format in ELIMINATION_FORMATS or (
        tournament.format == TournamentFormat.round_robin_knockout and _knockout_exists(session, tournament.id)
    ):
        placements = _elimination_placements(session, tournament.id)
        if placements is None:
            return False
        _complete(session, tournament, placements)
        return True

    if tournament.format == TournamentFormat.swiss:
        swiss_rounds = _rounds(session, tournament.id, SEGMENT_SWISS)
        if not swiss_rounds or swiss_rounds[-1].round_number < (tournament.total_rounds or 0):
            return False
        if not _all_terminal(_round_matches(session, swiss_rounds[-1].id)):
            return False
        enrollments = list(session.exec(select(Enrollment).where(Enrollment.tournament_id == tournament.id)).all())
        ratings = enrollment_ratings(session, enrollments)
        ranked = rank_swiss(
            [
                SwissRecord(e.id, e.swiss_points, ratings[e.id], tuple(e.swiss_opponents or []), e.swiss_bye_count)
                for e in enrollments
            ]
        )
        _complete(session, tournament, [r.enrollment_id for r in ranked])
        return True

    if tournament.format == TournamentFormat.round_robin_knockout:
        group_matches = _segment_matches(session, tournament.id, SEGMENT_GROUP)
        if not group_matches or not _all_terminal(group_matches):
            return False
        return _advance_from_groups(session, tournament).completed

    return False


def _complete(session: Session, tournament: Tournament, ranked_enrollment_ids: Sequence[int]) -> None:
    if not compare_and_set_status(session, Tournament, tournament.id, TOURNAMENT_IN_PROGRESS, TOURNAMENT_COMPLETED):
        raise RaceLostError("Tournament was already completed by another request", code="TOURNAMENT_RACE_LOST")

    now = datetime.utcnow()
    enrollments = {e.id: e for e in session.exec(select(Enrollment).where(Enrollment.tournament_id == tournament.id)).all()}
    for placement, entry_id in enumerate(ranked_enrollment_ids, start=1):
        enrollment = enrollments.get(entry_id)
        if enrollment is None:
            continue
        enrollment.final_placement = placement
        if placement > 1 and enrollment.eliminated_at is None:
            enrollment.eliminated_at = now
        session.add(enrollment)

    champion_id = ranked_enrollment_ids[0] if ranked_enrollment_ids else None
    affected: List[int] = []
    for enrollment in enrollments.values():
        for player_id in enrollment_player_ids(enrollment):
            player = session.get(Player, player_id)
            player.tournaments_played += 1
            if enrollment.id == champion_id:
                player.tournaments_won += 1
            session.add(player)
            affected.append(player_id)

    for match in session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == tournament.id, TournamentMatch.is_next_match == True  # noqa: E712
        )
    ).all():
        match.is_next_match = False
        session.add(match)

    tournament.completed_at = now
    refresh_current_round(session, tournament)
    logger.info(f"Tournament {tournament.id} completed; champion enrollment={champion_id}")
    queue_event(
        session,
        EVENT_TOURNAMENT_COMPLETED,
        tournament_id=tournament.id,
        champion_enrollment_id=champion_id,
        placements=list(ranked_enrollment_ids[:2]),
    )
    queue_achievement_check(session, *affected)
