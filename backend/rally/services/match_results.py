"""
Tournament match results: per-game results, quick series results, walkovers,
and per-match best-of overrides.

Each recorder validates, claims the match with a compare-and-set on its status
(so a double submission loses), applies ratings and bookkeeping, advances the
bracket, then re-evaluates stage completion.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlmodel import Session, select

from rally.models.enrollment import Enrollment
from rally.models.game_result import GameResult
from rally.models.match import (
    MATCH_COMPLETED,
    MATCH_IN_PROGRESS,
    MATCH_READY,
    MATCH_WALKOVER,
    ROLE_LOSER,
    TERMINAL_STATUSES,
    TournamentMatch,
)
from rally.models.player import Player
from rally.models.round import SEGMENT_GROUP, SEGMENT_SWISS, Round
from rally.models.tournament import TOURNAMENT_IN_PROGRESS, Tournament
from rally.services import rating as elo
from rally.services.advancement_service import (
    apply_advancement_for_final_match,
    refresh_current_round,
    select_next_match,
)
from rally.services.best_of import resolve_best_of, validate_best_of, validate_games, validate_series_score
from rally.services.errors import RaceLostError, StateError, ValidationError
from rally.services.notifications import EVENT_MATCH_COMPLETED, queue_achievement_check, queue_event
from rally.services.score_parser import games_to_json, parse_games, parse_series_score
from rally.services.stage_progression import GROUP_WIN_POINTS, SWISS_WIN_POINTS, check_completion
from rally.utils.guards import compare_and_set_status, require_match, require_tournament

logger = logging.getLogger(__name__)

WALKOVER_FORFEIT = "forfeit"
WALKOVER_NO_SHOW = "no_show"
WALKOVER_DISQUALIFICATION = "disqualification"
WALKOVER_REASONS = (WALKOVER_FORFEIT, WALKOVER_NO_SHOW, WALKOVER_DISQUALIFICATION)


@dataclass
class MatchOutcome:
    match_id: int
    winner_id: int
    loser_id: int
    status: str
    rating_changes: Dict[int, int] = field(default_factory=dict)  # player_id -> delta
    game_results_created: int = 0
    tournament_completed: bool = False
    next_match_id: Optional[int] = None


# =============================================================================
# Shared steps
# =============================================================================

def _load_for_recording(session: Session, match_id: int, winner_id: int) -> Tuple[TournamentMatch, Tournament]:
    match = require_match(session, match_id)
    tournament = require_tournament(session, match.tournament_id)
    if tournament.status != TOURNAMENT_IN_PROGRESS:
        raise StateError(
            f"Results can only be recorded while the tournament is in progress (status '{tournament.status}')",
            code="TOURNAMENT_NOT_IN_PROGRESS",
        )
    if match.status in TERMINAL_STATUSES:
        raise StateError(f"Match {match_id} is already {match.status}", code="MATCH_ALREADY_COMPLETED")
    if match.participant_a_id is None or match.participant_b_id is None or match.status not in (
        MATCH_READY,
        MATCH_IN_PROGRESS,
    ):
        raise StateError(f"Match {match_id} is not ready to be played", code="MATCH_NOT_READY")
    if winner_id not in (match.participant_a_id, match.participant_b_id):
        raise ValidationError(
            f"Winner {winner_id} is not a participant of match {match_id}", code="WINNER_NOT_IN_MATCH"
        )
    return match, tournament


def _claim(session: Session, match: TournamentMatch, new_status: str) -> None:
    if not compare_and_set_status(session, TournamentMatch, match.id, [MATCH_READY, MATCH_IN_PROGRESS], new_status):
        raise RaceLostError(f"Result for match {match.id} was already recorded", code="MATCH_RACE_LOST")


def effective_best_of(session: Session, match: TournamentMatch, tournament: Optional[Tournament] = None) -> int:
    tournament = tournament or require_tournament(session, match.tournament_id)
    db_round = session.get(Round, match.round_id)
    return resolve_best_of(match.best_of, db_round.best_of if db_round else None, tournament.default_best_of)


def _side_players(session: Session, enrollment_id: int) -> List[Player]:
    enrollment = session.get(Enrollment, enrollment_id)
    players = [session.get(Player, enrollment.player_id)]
    if enrollment.partner_id is not None:
        players.append(session.get(Player, enrollment.partner_id))
    return players


def _update_player_stats(player: Player, won: bool) -> None:
    player.tournament_matches_played += 1
    if won:
        player.tournament_matches_won += 1
    player.tournament_current_streak = elo.next_streak(player.tournament_current_streak, won)
    player.tournament_best_streak = max(player.tournament_best_streak, player.tournament_current_streak)
    player.xp += elo.xp_for_result(won, player.tournament_current_streak)
    player.level = elo.level_for_xp(player.xp)
    player.updated_at = datetime.utcnow()


def _record_bookkeeping(
    session: Session, match: TournamentMatch, winner_id: int, loser_id: int, winner_point_diff: int
) -> None:
    """Swiss points/opponent history and group standings for the two sides."""
    winner = session.get(Enrollment, winner_id)
    loser = session.get(Enrollment, loser_id)

    if match.bracket_segment == SEGMENT_SWISS:
        winner.swiss_points += SWISS_WIN_POINTS
        # JSON columns need a new list to register as changed
        winner.swiss_opponents = list(winner.swiss_opponents or []) + [loser.id]
        loser.swiss_opponents = list(loser.swiss_opponents or []) + [winner.id]
    elif match.bracket_segment == SEGMENT_GROUP:
        winner.group_points += GROUP_WIN_POINTS
        winner.group_wins += 1
        winner.group_point_diff += winner_point_diff
        loser.group_losses += 1
        loser.group_point_diff -= winner_point_diff

    session.add(winner)
    session.add(loser)


def _mark_eliminated(session: Session, match: TournamentMatch, loser_id: int) -> None:
    """A bracket loser is out when no downstream slot takes the loser or they were disqualified."""
    if match.bracket_segment in (SEGMENT_SWISS, SEGMENT_GROUP):
        return
    takes_loser = session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == match.tournament_id,
            ((TournamentMatch.source_match_a_id == match.id) & (TournamentMatch.source_a_role == ROLE_LOSER))
            | ((TournamentMatch.source_match_b_id == match.id) & (TournamentMatch.source_b_role == ROLE_LOSER)),
        )
    ).first()
    loser = session.get(Enrollment, loser_id)
    if takes_loser is None or not loser.is_active:
        if loser.eliminated_at is None:
            loser.eliminated_at = datetime.utcnow()
            session.add(loser)


def _finish(
    session: Session,
    tournament: Tournament,
    match: TournamentMatch,
    winner_id: int,
    outcome: MatchOutcome,
    winner_point_diff: int = 0,
) -> MatchOutcome:
    loser_id = outcome.loser_id
    match.winner_id = winner_id
    match.played_at = datetime.utcnow()
    match.is_next_match = False
    session.add(match)

    _record_bookkeeping(session, match, winner_id, loser_id, winner_point_diff)
    _mark_eliminated(session, match, loser_id)
    apply_advancement_for_final_match(session, match.id)

    queue_event(
        session,
        EVENT_MATCH_COMPLETED,
        tournament_id=tournament.id,
        match_id=match.id,
        winner_enrollment_id=winner_id,
        loser_enrollment_id=loser_id,
        status=outcome.status,
    )

    outcome.tournament_completed = check_completion(session, tournament)
    if not outcome.tournament_completed:
        refresh_current_round(session, tournament)
        nxt = select_next_match(session, tournament.id)
        outcome.next_match_id = nxt.id if nxt else None

    queue_achievement_check(session, *outcome.rating_changes.keys())
    logger.info(
        f"Match {match.id} ({match.bracket_segment} r{match.round_number}p{match.position}) "
        f"{outcome.status}: winner={winner_id} loser={loser_id}"
    )
    return outcome


# =============================================================================
# Operations
# =============================================================================

def record_tournament_match_result(
    session: Session,
    match_id: int,
    winner_id: int,
    games: Union[str, Sequence[Any]],
) -> MatchOutcome:
    """
    Record a series game by game.

    Ratings are updated after every game on running values (per-game mode);
    one GameResult row is written per game.
    """
    match, tournament = _load_for_recording(session, match_id, winner_id)
    parsed = parse_games(games if isinstance(games, str) else list(games))
    if parsed is None:
        raise ValidationError("Game scores could not be parsed", code="INVALID_SCORES")
    best_of = effective_best_of(session, match, tournament)
    winning_side = validate_games(parsed, best_of)
    declared_side = "a" if winner_id == match.participant_a_id else "b"
    if winning_side != declared_side:
        raise ValidationError("Declared winner did not win the series", code="WINNER_MISMATCH")

    _claim(session, match, MATCH_COMPLETED)

    side_a = _side_players(session, match.participant_a_id)
    side_b = _side_players(session, match.participant_b_id)
    before = {p.id: p.rating for p in side_a + side_b}
    ratings_a, ratings_b, changes = elo.calculate_per_game_elo(
        [p.rating for p in side_a], [p.rating for p in side_b], parsed.games, match.elo_multiplier
    )
    for player, new_rating in zip(side_a, ratings_a):
        player.rating = new_rating
    for player, new_rating in zip(side_b, ratings_b):
        player.rating = new_rating

    a_won_series = declared_side == "a"
    for player in side_a:
        _update_player_stats(player, a_won_series)
        session.add(player)
    for player in side_b:
        _update_player_stats(player, not a_won_series)
        session.add(player)

    for number, ((a_score, b_score), change) in enumerate(zip(parsed.games, changes), start=1):
        game_winners, game_losers = (side_a, side_b) if a_score > b_score else (side_b, side_a)
        session.add(
            GameResult(
                winner_id=game_winners[0].id,
                loser_id=game_losers[0].id,
                winner_partner_id=game_winners[1].id if len(game_winners) > 1 else None,
                loser_partner_id=game_losers[1].id if len(game_losers) > 1 else None,
                winner_score=max(a_score, b_score),
                loser_score=min(a_score, b_score),
                rating_change=abs(change),
                tournament_match_id=match.id,
                game_number=number,
            )
        )

    match.scores = games_to_json(parsed.games)
    match.series_score = f"{max(parsed.side_a_wins, parsed.side_b_wins)}-{min(parsed.side_a_wins, parsed.side_b_wins)}"

    loser_id = match.participant_b_id if declared_side == "a" else match.participant_a_id
    outcome = MatchOutcome(
        match_id=match.id,
        winner_id=winner_id,
        loser_id=loser_id,
        status=MATCH_COMPLETED,
        rating_changes={p.id: p.rating - before[p.id] for p in side_a + side_b},
        game_results_created=len(parsed.games),
    )
    diff = parsed.point_diff if declared_side == "a" else -parsed.point_diff
    return _finish(session, tournament, match, winner_id, outcome, winner_point_diff=diff)


def record_quick_result(session: Session, match_id: int, winner_id: int, series_score: str) -> MatchOutcome:
    """Record only the series score ("2-1"). One flat rating update; no GameResult rows."""
    match, tournament = _load_for_recording(session, match_id, winner_id)
    best_of = effective_best_of(session, match, tournament)
    if not validate_series_score(series_score, best_of):
        raise ValidationError(
            f"'{series_score}' is not a valid result for a best-of-{best_of} series", code="INVALID_SERIES_SCORE"
        )

    _claim(session, match, MATCH_COMPLETED)

    loser_id = match.participant_b_id if winner_id == match.participant_a_id else match.participant_a_id
    winners = _side_players(session, winner_id)
    losers = _side_players(session, loser_id)
    before = {p.id: p.rating for p in winners + losers}

    if len(winners) == 2 and len(losers) == 2:
        result = elo.calculate_tournament_doubles_elo(
            [p.rating for p in winners], [p.rating for p in losers], match.elo_multiplier
        )
        new_winners, new_losers = result.winner_ratings, result.loser_ratings
    else:
        single = elo.calculate_tournament_elo(winners[0].rating, losers[0].rating, match.elo_multiplier)
        new_winners, new_losers = (single.new_winner_rating,), (single.new_loser_rating,)

    for player, new_rating in zip(winners, new_winners):
        player.rating = new_rating
        _update_player_stats(player, True)
        session.add(player)
    for player, new_rating in zip(losers, new_losers):
        player.rating = new_rating
        _update_player_stats(player, False)
        session.add(player)

    match.series_score = parse_series_score(series_score).display()
    outcome = MatchOutcome(
        match_id=match.id,
        winner_id=winner_id,
        loser_id=loser_id,
        status=MATCH_COMPLETED,
        rating_changes={p.id: p.rating - before[p.id] for p in winners + losers},
    )
    return _finish(session, tournament, match, winner_id, outcome)


def record_walkover(session: Session, match_id: int, winner_id: int, reason: str) -> MatchOutcome:
    """Award the match without play. No rating change; disqualification removes the loser from the event."""
    if reason not in WALKOVER_REASONS:
        raise ValidationError(
            f"Walkover reason must be one of {', '.join(WALKOVER_REASONS)}", code="INVALID_WALKOVER_REASON"
        )
    match, tournament = _load_for_recording(session, match_id, winner_id)

    _claim(session, match, MATCH_WALKOVER)

    loser_id = match.participant_b_id if winner_id == match.participant_a_id else match.participant_a_id
    match.is_walkover = True
    match.walkover_reason = reason

    if reason == WALKOVER_DISQUALIFICATION:
        loser = session.get(Enrollment, loser_id)
        loser.is_active = False
        loser.eliminated_at = datetime.utcnow()
        session.add(loser)
        logger.warning(f"Enrollment {loser_id} disqualified in match {match_id}")

    outcome = MatchOutcome(match_id=match.id, winner_id=winner_id, loser_id=loser_id, status=MATCH_WALKOVER)
    return _finish(session, tournament, match, winner_id, outcome)


def set_match_best_of(session: Session, match_id: int, value: Optional[int]) -> TournamentMatch:
    """Set (or clear with None) the per-match override. Blocked once the match is over."""
    match = require_match(session, match_id)
    if match.status in TERMINAL_STATUSES:
        raise StateError(f"Match {match_id} is already {match.status}", code="MATCH_ALREADY_COMPLETED")
    match.best_of = validate_best_of(value) if value is not None else None
    session.add(match)
    return match


def get_match_effective_best_of(session: Session, match_id: int) -> Dict[str, Optional[int]]:
    match = require_match(session, match_id)
    tournament = require_tournament(session, match.tournament_id)
    db_round = session.get(Round, match.round_id)
    return {
        "match_id": match.id,
        "match_best_of": match.best_of,
        "round_best_of": db_round.best_of if db_round else None,
        "tournament_best_of": tournament.default_best_of,
        "effective_best_of": effective_best_of(session, match, tournament),
    }
