"""Recording results: per-game, quick, walkover, best-of overrides and next-match selection."""
import pytest
from sqlalchemy import update
from sqlmodel import Session, select

from rally.models.enrollment import Enrollment
from rally.models.game_result import GameResult
from rally.models.match import MATCH_COMPLETED, MATCH_READY, MATCH_WALKOVER, TournamentMatch
from rally.models.player import Player
from rally.models.round import Round
from rally.models.tournament import MatchType, Tournament, TournamentFormat
from rally.services import advancement_service, match_results
from rally.services.errors import RaceLostError, StateError, ValidationError
from rally.services.notifications import get_event_publisher
from tests.helpers import all_matches, make_tournament, next_ready, start


@pytest.fixture
def final_only(session: Session):
    """Two equal-rated players in a single-match bracket at multiplier 100."""
    tournament = make_tournament(
        session, TournamentFormat.single_elimination, 2, base_elo_multiplier=100, finals_elo_multiplier=100
    )
    for player in session.exec(select(Player)).all():
        player.rating = 1000
        session.add(player)
    session.commit()
    start(session, tournament.id)
    return tournament.id, next_ready(session, tournament.id)


def ratings(session: Session):
    session.expire_all()
    return {p.id: p.rating for p in session.exec(select(Player)).all()}


def player_of(session: Session, enrollment_id: int) -> Player:
    return session.get(Player, session.get(Enrollment, enrollment_id).player_id)


def test_eleven_nil_moves_equal_players_sixteen(session: Session, final_only):
    _, match = final_only
    winner = player_of(session, match.participant_a_id)
    loser = player_of(session, match.participant_b_id)

    outcome = match_results.record_tournament_match_result(session, match.id, match.participant_a_id, "11-0")
    session.commit()

    assert outcome.rating_changes == {winner.id: 16, loser.id: -16}
    after = ratings(session)
    assert after[winner.id] == 1016
    assert after[loser.id] == 984
    assert outcome.tournament_completed


def test_per_game_result_writes_one_row_per_game(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4, default_best_of=3)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)

    outcome = match_results.record_tournament_match_result(
        session, match.id, match.participant_b_id, [{"a": 11, "b": 8}, {"a": 6, "b": 11}, {"a": 9, "b": 11}]
    )
    session.commit()

    rows = session.exec(
        select(GameResult).where(GameResult.tournament_match_id == match.id).order_by(GameResult.game_number)
    ).all()
    assert outcome.game_results_created == 3
    assert [r.game_number for r in rows] == [1, 2, 3]
    session.expire_all()
    match = session.get(TournamentMatch, match.id)
    assert match.status == MATCH_COMPLETED
    assert match.winner_id == match.participant_b_id
    assert match.series_score == "2-1"
    assert match.scores == [{"a": 11, "b": 8}, {"a": 6, "b": 11}, {"a": 9, "b": 11}]


def test_group_point_diff_follows_the_series_winner(session: Session):
    tournament = make_tournament(
        session, TournamentFormat.round_robin_knockout, 4, group_count=1, advance_per_group=2, group_stage_best_of=3
    )
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    winner_id, loser_id = match.participant_b_id, match.participant_a_id

    # side b takes the series 2-1 and wins 30-26 on points
    match_results.record_tournament_match_result(
        session, match.id, winner_id, [{"a": 11, "b": 8}, {"a": 6, "b": 11}, {"a": 9, "b": 11}]
    )
    session.commit()
    session.expire_all()

    winner = session.get(Enrollment, winner_id)
    loser = session.get(Enrollment, loser_id)
    assert (winner.group_wins, winner.group_point_diff) == (1, 4)
    assert (loser.group_losses, loser.group_point_diff) == (1, -4)


def test_per_game_rating_deltas_are_zero_sum(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2, default_best_of=5)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    outcome = match_results.record_tournament_match_result(
        session, match.id, match.participant_a_id, "11-4 8-11 11-9 11-13 11-2"
    )
    assert sum(outcome.rating_changes.values()) == 0


def test_quick_result_creates_no_game_rows(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4, default_best_of=3)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)

    outcome = match_results.record_quick_result(session, match.id, match.participant_a_id, "2-1")
    session.commit()

    assert outcome.game_results_created == 0
    assert not session.exec(select(GameResult)).all()
    session.expire_all()
    assert session.get(TournamentMatch, match.id).series_score == "2-1"
    assert sum(outcome.rating_changes.values()) == 0


def test_quick_result_rejects_wrong_length(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4, default_best_of=3)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    with pytest.raises(ValidationError) as exc:
        match_results.record_quick_result(session, match.id, match.participant_a_id, "3-0")
    assert exc.value.code == "INVALID_SERIES_SCORE"


def test_doubles_quick_result_moves_partners_together(session: Session):
    tournament = make_tournament(
        session,
        TournamentFormat.single_elimination,
        2,
        match_type=MatchType.doubles,
        base_elo_multiplier=100,
        finals_elo_multiplier=100,
    )
    for player in session.exec(select(Player)).all():
        player.rating = 1000
        session.add(player)
    session.commit()
    start(session, tournament.id)
    match = next_ready(session, tournament.id)

    outcome = match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.commit()
    assert sorted(outcome.rating_changes.values()) == [-12, -12, 12, 12]


def test_result_updates_player_progression(session: Session, final_only):
    _, match = final_only
    winner = player_of(session, match.participant_a_id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.commit()
    session.expire_all()
    winner = session.get(Player, winner.id)
    assert winner.tournament_matches_played == 1
    assert winner.tournament_matches_won == 1
    assert winner.tournament_current_streak == 1
    assert winner.xp == 30


def test_declared_winner_must_win_the_games(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    with pytest.raises(ValidationError) as exc:
        match_results.record_tournament_match_result(session, match.id, match.participant_a_id, "7-11")
    assert exc.value.code == "WINNER_MISMATCH"


def test_winner_must_be_a_participant(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    first, second = [m for m in all_matches(session, tournament.id) if m.status == MATCH_READY][:2]
    with pytest.raises(ValidationError) as exc:
        match_results.record_quick_result(session, first.id, second.participant_a_id, "1-0")
    assert exc.value.code == "WINNER_NOT_IN_MATCH"


def test_pending_match_cannot_be_recorded(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]
    with pytest.raises(StateError) as exc:
        match_results.record_quick_result(session, final.id, 1, "1-0")
    assert exc.value.code == "MATCH_NOT_READY"


def test_second_submission_is_rejected(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.commit()

    with pytest.raises(StateError) as exc:
        match_results.record_quick_result(session, match.id, match.participant_b_id, "1-0")
    assert exc.value.code == "MATCH_ALREADY_COMPLETED"


def test_concurrent_submission_loses_race(session: Session):
    """Another request completed the match after this one loaded it."""
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    assert match.status == MATCH_READY

    session.execute(
        update(TournamentMatch)
        .where(TournamentMatch.id == match.id)
        .values(status=MATCH_COMPLETED)
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(RaceLostError) as exc:
        match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    assert exc.value.code == "MATCH_RACE_LOST"
    session.rollback()


def test_results_rejected_outside_in_progress(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    session.get(Tournament, tournament.id).status = "cancelled"
    with pytest.raises(StateError) as exc:
        match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    assert exc.value.code == "TOURNAMENT_NOT_IN_PROGRESS"
    session.rollback()


# -----------------------------------------------------------------------------
# Walkovers
# -----------------------------------------------------------------------------

def test_walkover_changes_no_ratings_and_advances(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    before = ratings(session)
    match = next_ready(session, tournament.id)

    outcome = match_results.record_walkover(session, match.id, match.participant_a_id, "no_show")
    session.commit()

    assert outcome.rating_changes == {}
    assert ratings(session) == before
    match = session.get(TournamentMatch, match.id)
    assert match.status == MATCH_WALKOVER
    assert match.is_walkover
    assert match.walkover_reason == "no_show"
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]
    assert match.winner_id in (final.participant_a_id, final.participant_b_id)


def test_disqualification_deactivates_loser(session: Session):
    tournament = make_tournament(session, TournamentFormat.double_elimination, 4)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    loser_id = match.participant_b_id

    match_results.record_walkover(session, match.id, match.participant_a_id, "disqualification")
    session.commit()
    session.expire_all()

    loser = session.get(Enrollment, loser_id)
    assert loser.is_active is False
    assert loser.eliminated_at is not None
    # No second life in the losers bracket after a walkover
    assert not any(
        loser_id in (m.participant_a_id, m.participant_b_id)
        for m in all_matches(session, tournament.id)
        if m.bracket_segment == "losers"
    )


def test_walkover_reason_must_be_known(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    with pytest.raises(ValidationError) as exc:
        match_results.record_walkover(session, match.id, match.participant_a_id, "weather")
    assert exc.value.code == "INVALID_WALKOVER_REASON"


# -----------------------------------------------------------------------------
# Best-of overrides
# -----------------------------------------------------------------------------

def test_effective_best_of_hierarchy(session: Session):
    tournament = make_tournament(
        session, TournamentFormat.single_elimination, 4, default_best_of=1, semifinals_best_of=3, finals_best_of=5
    )
    start(session, tournament.id)
    semi = next_ready(session, tournament.id)
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]

    assert match_results.get_match_effective_best_of(session, semi.id)["effective_best_of"] == 3
    info = match_results.get_match_effective_best_of(session, final.id)
    assert info["round_best_of"] == 5
    assert info["effective_best_of"] == 5

    match_results.set_match_best_of(session, semi.id, 5)
    session.commit()
    info = match_results.get_match_effective_best_of(session, semi.id)
    assert info == {
        "match_id": semi.id,
        "match_best_of": 5,
        "round_best_of": 3,
        "tournament_best_of": 1,
        "effective_best_of": 5,
    }

    match_results.set_match_best_of(session, semi.id, None)
    session.commit()
    assert match_results.get_match_effective_best_of(session, semi.id)["effective_best_of"] == 3


def test_best_of_override_validated(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    with pytest.raises(ValidationError):
        match_results.set_match_best_of(session, match.id, 2)


def test_best_of_locked_after_completion(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.commit()
    with pytest.raises(StateError) as exc:
        match_results.set_match_best_of(session, match.id, 3)
    assert exc.value.code == "MATCH_ALREADY_COMPLETED"


def test_round_best_of_uses_semifinal_setting(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 8, semifinals_best_of=3)
    start(session, tournament.id)
    rounds = session.exec(select(Round).where(Round.tournament_id == tournament.id).order_by(Round.round_number)).all()
    assert [r.best_of for r in rounds] == [1, 3, 1]


# -----------------------------------------------------------------------------
# Next match and repair
# -----------------------------------------------------------------------------

def test_next_match_moves_on_after_result(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    first = next_ready(session, tournament.id)
    assert first.is_next_match

    outcome = match_results.record_quick_result(session, first.id, first.participant_a_id, "1-0")
    session.commit()
    flagged = [m for m in all_matches(session, tournament.id) if m.is_next_match]
    assert [m.id for m in flagged] == [outcome.next_match_id]
    assert outcome.next_match_id != first.id


def test_manual_next_match(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    ready = [m for m in all_matches(session, tournament.id) if m.status == MATCH_READY]
    advancement_service.set_next_match(session, tournament.id, ready[1].id)
    session.commit()
    flagged = [m.id for m in all_matches(session, tournament.id) if m.is_next_match]
    assert flagged == [ready[1].id]


def test_manual_next_match_must_be_ready(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]
    with pytest.raises(StateError) as exc:
        advancement_service.set_next_match(session, tournament.id, final.id)
    assert exc.value.code == "MATCH_NOT_READY"
    with pytest.raises(ValidationError) as exc:
        advancement_service.set_next_match(session, tournament.id + 1, final.id)
    assert exc.value.code == "MATCH_NOT_IN_TOURNAMENT"


def test_resolve_all_dependencies_repairs_and_is_idempotent(session: Session):
    tournament = make_tournament(session, TournamentFormat.single_elimination, 4)
    start(session, tournament.id)
    match = next_ready(session, tournament.id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.commit()

    # Lose the advanced participant, as if a write had gone missing
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]
    final.participant_a_id = None
    session.add(final)
    session.commit()

    counts = advancement_service.resolve_all_dependencies(session, tournament.id)
    session.commit()
    assert counts["unknown_before"] == 1
    assert counts["slots_filled"] == 1
    assert counts["unknown_after"] == 1  # the other semifinal is still open

    again = advancement_service.resolve_all_dependencies(session, tournament.id)
    assert again["slots_filled"] == 0
    final = [m for m in all_matches(session, tournament.id) if m.round_number == 2][0]
    assert final.participant_a_id == match.winner_id


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------

def test_events_published_only_after_commit(session: Session):
    received = []
    checked = []
    publisher = get_event_publisher()
    publisher.subscribe(lambda name, payload: received.append((name, payload)))
    publisher.register_achievement_hook(checked.append)

    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    stage_result = start(session, tournament.id)
    assert [name for name, _ in received] == ["tournament.started"]
    assert received[0][1]["tournament_id"] == stage_result.tournament_id

    match = next_ready(session, tournament.id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    assert [name for name, _ in received] == ["tournament.started"]
    session.commit()

    assert [name for name, _ in received] == [
        "tournament.started",
        "tournament.match.completed",
        "tournament.completed",
    ]
    assert len(set(checked)) == 2


def test_events_dropped_on_rollback(session: Session):
    received = []
    get_event_publisher().subscribe(lambda name, payload: received.append(name))
    tournament = make_tournament(session, TournamentFormat.single_elimination, 2)
    stage = start(session, tournament.id)
    received.clear()

    match = next_ready(session, tournament.id)
    match_results.record_quick_result(session, match.id, match.participant_a_id, "1-0")
    session.rollback()
    assert received == []
    session.expire_all()
    assert session.get(Tournament, stage.tournament_id).status == "in_progress"
