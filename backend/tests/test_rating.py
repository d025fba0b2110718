"""Rating engine: Elo baselines, multipliers, doubles damping and progression."""
import pytest

from rally.services import rating as elo


def test_equal_ratings_head_to_head_moves_sixteen():
    result = elo.calculate_elo(1000, 1000)
    assert result.change == 16
    assert result.new_winner_rating == 1016
    assert result.new_loser_rating == 984


def test_tournament_elo_base_multiplier_100_matches_baseline():
    """Equal-rated singles at multiplier 100: winner +16, loser -16."""
    result = elo.calculate_tournament_elo(1000, 1000, 100)
    assert result.new_winner_rating - 1000 == 16
    assert result.new_loser_rating - 1000 == -16


def test_tournament_doubles_equal_teams_moves_twelve_each():
    """Doubles at multiplier 100: each teammate moves 75% of 16."""
    result = elo.calculate_tournament_doubles_elo([1000, 1000], [1000, 1000], 100)
    assert result.change == 12
    assert result.winner_ratings == (1012, 1012)
    assert result.loser_ratings == (988, 988)


def test_multiplier_scales_change():
    assert elo.calculate_tournament_elo(1000, 1000, 150).change == 24
    assert elo.calculate_tournament_elo(1000, 1000, 300).change == 48


@pytest.mark.parametrize(
    "winner,loser",
    [(1000, 1000), (1400, 1000), (1000, 1400), (1213, 987), (2000, 600)],
)
def test_singles_updates_are_zero_sum(winner, loser):
    result = elo.calculate_tournament_elo(winner, loser, 100)
    assert (result.new_winner_rating - winner) + (result.new_loser_rating - loser) == 0


def test_doubles_teammates_move_together():
    result = elo.calculate_tournament_doubles_elo([1300, 1100], [1000, 1050], 150)
    w1, w2 = result.winner_ratings
    l1, l2 = result.loser_ratings
    assert w1 - 1300 == w2 - 1100 == result.change
    assert 1000 - l1 == 1050 - l2 == result.change


def test_upset_moves_more_than_expected_win():
    upset = elo.calculate_elo(1000, 1400)
    expected = elo.calculate_elo(1400, 1000)
    assert upset.change > expected.change
    assert upset.change + expected.change == 32


def test_loser_rating_floor():
    result = elo.calculate_elo(105, 105)
    assert result.new_loser_rating == elo.RATING_FLOOR


def test_per_game_updates_run_on_running_ratings():
    a, b, changes = elo.calculate_per_game_elo([1000], [1000], [(11, 7), (9, 11), (11, 5)], 100)
    assert changes[0] == 16
    assert changes[1] < 0
    assert a[0] - 1000 == sum(changes)
    assert b[0] - 1000 == -sum(changes)


def test_per_game_doubles_keeps_partners_in_step():
    a, b, changes = elo.calculate_per_game_elo([1000, 1100], [1050, 1050], [(11, 9), (11, 4)], 100)
    assert a[0] - 1000 == a[1] - 1100
    assert b[0] - 1050 == b[1] - 1050 == -sum(changes)


def test_round_multiplier_interpolates():
    assert elo.calculate_round_multiplier(1, 3, 150, 300) == 150
    assert elo.calculate_round_multiplier(2, 3, 150, 300) == 225
    assert elo.calculate_round_multiplier(3, 3, 150, 300) == 300
    assert elo.calculate_round_multiplier(1, 1, 150, 300) == 300


def test_round_is_half_up():
    assert elo._round(2.5) == 3
    assert elo._round(3.5) == 4
    assert elo._round(-0.5) == 0


def test_xp_and_levels():
    assert elo.xp_for_result(False, 0) == 10
    assert elo.xp_for_result(True, 1) == 30
    assert elo.xp_for_result(True, 25) == 75
    assert elo.level_for_xp(0) == 1
    assert elo.level_for_xp(99) == 1
    assert elo.level_for_xp(100) == 2
    assert elo.level_for_xp(400) == 3


def test_streaks():
    assert elo.next_streak(3, True) == 4
    assert elo.next_streak(3, False) == 0


@pytest.mark.parametrize(
    "rating,tier",
    [(1850, "Grandmaster"), (1600, "Master"), (1450, "Diamond"), (1200, "Platinum"), (1000, "Gold"), (800, "Silver"), (120, "Bronze")],
)
def test_rating_tiers(rating, tier):
    assert elo.rating_tier(rating) == tier
