"""Best-of resolution, series validation and score parsing."""
from types import SimpleNamespace

import pytest

from rally.models.round import SEGMENT_FINALS, SEGMENT_GROUP, SEGMENT_SWISS, SEGMENT_WINNERS
from rally.services.best_of import (
    best_of_label,
    games_needed_to_win,
    resolve_best_of,
    round_default_best_of,
    valid_series_scores,
    validate_best_of,
    validate_games,
    validate_series_score,
)
from rally.services.errors import ValidationError
from rally.services.score_parser import parse_games, parse_series_score


def config(**overrides):
    values = dict(
        default_best_of=1,
        group_stage_best_of=None,
        early_rounds_best_of=None,
        semifinals_best_of=None,
        finals_best_of=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.parametrize(
    "best_of,expected",
    [
        (1, ["1-0"]),
        (3, ["2-0", "2-1"]),
        (5, ["3-0", "3-1", "3-2"]),
        (7, ["4-0", "4-1", "4-2", "4-3"]),
    ],
)
def test_valid_quick_scores(best_of, expected):
    assert valid_series_scores(best_of) == expected
    for score in expected:
        assert validate_series_score(score, best_of)


@pytest.mark.parametrize("raw", ["1-2", "2-2", "3-0", "1-0", "2", "two-one", "", "2-1-0"])
def test_invalid_quick_scores_for_best_of_three(raw):
    assert not validate_series_score(raw, 3)


def test_resolution_order_match_round_tournament():
    assert resolve_best_of(5, 3, 1) == 5
    assert resolve_best_of(None, 3, 1) == 3
    assert resolve_best_of(None, None, 7) == 7
    assert resolve_best_of(None, None, 0) == 1


def test_validate_best_of_rejects_even_values():
    assert validate_best_of(3) == 3
    with pytest.raises(ValidationError) as exc:
        validate_best_of(4)
    assert exc.value.code == "INVALID_BEST_OF"


def test_games_needed():
    assert [games_needed_to_win(n) for n in (1, 3, 5, 7)] == [1, 2, 3, 4]


def test_round_defaults_by_stage():
    cfg = config(default_best_of=1, group_stage_best_of=3, early_rounds_best_of=1, semifinals_best_of=5, finals_best_of=7)
    assert round_default_best_of("Group Stage - Round 1", SEGMENT_GROUP, cfg) == 3
    assert round_default_best_of("Swiss Round 2", SEGMENT_SWISS, cfg) == 3
    assert round_default_best_of("Round of 16", SEGMENT_WINNERS, cfg) == 1
    assert round_default_best_of("Semifinals", SEGMENT_WINNERS, cfg) == 5
    assert round_default_best_of("Finals", SEGMENT_FINALS, cfg) == 7
    assert round_default_best_of("Grand Finals Reset", SEGMENT_FINALS, cfg) == 7


def test_semifinals_fall_back_to_finals_then_default():
    assert round_default_best_of("Knockout Semifinals", SEGMENT_WINNERS, config(finals_best_of=5)) == 5
    assert round_default_best_of("Knockout Semifinals", SEGMENT_WINNERS, config(default_best_of=3)) == 3


def test_validate_games_returns_winning_side():
    assert validate_games(parse_games("11-7 9-11 11-5"), 3) == "a"
    assert validate_games(parse_games([{"a": 3, "b": 11}, {"a": 5, "b": 11}]), 3) == "b"


@pytest.mark.parametrize(
    "games,best_of",
    [
        ([], 3),  # nothing played
        ([(11, 7), (11, 8), (11, 9)], 3),  # game after the series was decided
        ([(11, 7)], 3),  # series unfinished
        ([(11, 11)], 1),  # tie
        ([(11, 7), (7, 11), (11, 9), (9, 11)], 3),  # too many games
    ],
)
def test_validate_games_rejects(games, best_of):
    with pytest.raises(ValidationError):
        validate_games(parse_games([list(g) for g in games]), best_of)


def test_parse_games_shapes():
    parsed = parse_games("11-7, 9-11")
    assert parsed.games == [(11, 7), (9, 11)]
    assert parsed.side_a_wins == 1 and parsed.side_b_wins == 1
    assert parsed.point_diff == 2
    assert parse_games([[11, 3]]).games == [(11, 3)]
    assert parse_games("eleven-seven") is None
    assert parse_games([{"a": "x", "b": 1}]) is None


def test_parse_series_score():
    assert parse_series_score("2-1").display() == "2-1"
    assert parse_series_score(" 1-2 ").display() == "2-1"
    assert parse_series_score("2:1") is None


def test_labels():
    assert best_of_label(1) == "Single Game"
    assert best_of_label(5) == "Best of 5"
