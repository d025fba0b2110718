"""
Rating engine: Elo deltas for singles and doubles, head-to-head and
tournament-scaled, plus XP/level progression.

All functions are pure. Multipliers are percentages (150 = 1.5x).
"""
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

K_FACTOR = 32
STARTING_RATING = 1000
RATING_FLOOR = 100
DOUBLES_FACTOR = 0.75

XP_WIN = 25
XP_LOSS = 10
XP_STREAK_BONUS = 5
XP_STREAK_CAP = 10

RATING_TIERS: List[Tuple[int, str]] = [
    (1800, "Grandmaster"),
    (1600, "Master"),
    (1400, "Diamond"),
    (1200, "Platinum"),
    (1000, "Gold"),
    (800, "Silver"),
    (0, "Bronze"),
]


@dataclass
class RatingResult:
    new_winner_rating: int
    new_loser_rating: int
    change: int


@dataclass
class DoublesRatingResult:
    winner_ratings: Tuple[int, int]
    loser_ratings: Tuple[int, int]
    change: int


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1 / (1 + math.pow(10, (opponent_rating - rating) / 400))


def _round(value: float) -> int:
    # half-up, not banker's rounding
    return math.floor(value + 0.5)


def _base_change(winner_rating: float, loser_rating: float) -> int:
    return _round(K_FACTOR * (1 - expected_score(winner_rating, loser_rating)))


def _clamp(rating: int) -> int:
    return max(rating, RATING_FLOOR)


def team_rating(first: int, second: int) -> int:
    return _round((first + second) / 2)


def calculate_elo(winner_rating: int, loser_rating: int) -> RatingResult:
    """Head-to-head singles update."""
    change = _base_change(winner_rating, loser_rating)
    return RatingResult(
        new_winner_rating=winner_rating + change,
        new_loser_rating=_clamp(loser_rating - change),
        change=change,
    )


def calculate_doubles_elo(
    winner_ratings: Sequence[int], loser_ratings: Sequence[int]
) -> DoublesRatingResult:
    """Head-to-head doubles update; the change is computed on team averages and damped."""
    winner_team = (winner_ratings[0] + winner_ratings[1]) / 2
    loser_team = (loser_ratings[0] + loser_ratings[1]) / 2
    change = _round(_base_change(winner_team, loser_team) * DOUBLES_FACTOR)
    return DoublesRatingResult(
        winner_ratings=(winner_ratings[0] + change, winner_ratings[1] + change),
        loser_ratings=(_clamp(loser_ratings[0] - change), _clamp(loser_ratings[1] - change)),
        change=change,
    )


def calculate_tournament_elo(winner_rating: int, loser_rating: int, multiplier: int) -> RatingResult:
    change = _round(_base_change(winner_rating, loser_rating) * multiplier / 100)
    return RatingResult(
        new_winner_rating=winner_rating + change,
        new_loser_rating=_clamp(loser_rating - change),
        change=change,
    )


def calculate_tournament_doubles_elo(
    winner_ratings: Sequence[int], loser_ratings: Sequence[int], multiplier: int
) -> DoublesRatingResult:
    winner_team = (winner_ratings[0] + winner_ratings[1]) / 2
    loser_team = (loser_ratings[0] + loser_ratings[1]) / 2
    doubles_change = _round(_base_change(winner_team, loser_team) * DOUBLES_FACTOR)
    change = _round(doubles_change * multiplier / 100)
    return DoublesRatingResult(
        winner_ratings=(winner_ratings[0] + change, winner_ratings[1] + change),
        loser_ratings=(_clamp(loser_ratings[0] - change), _clamp(loser_ratings[1] - change)),
        change=change,
    )


def calculate_per_game_elo(
    side_a: Sequence[int], side_b: Sequence[int], games: Sequence[Tuple[int, int]], multiplier: int
) -> Tuple[List[int], List[int], List[int]]:
    """
    Apply one tournament-scaled update per game, in order, on running ratings.

    side_a / side_b hold one rating (singles) or two (doubles). games are
    (a_score, b_score). Returns the final ratings for each side and the signed
    per-game change from side A's point of view.
    """
    a = list(side_a)
    b = list(side_b)
    changes: List[int] = []
    doubles = len(a) == 2
    for a_score, b_score in games:
        a_won = a_score > b_score
        winners, losers = (a, b) if a_won else (b, a)
        if doubles:
            res = calculate_tournament_doubles_elo(winners, losers, multiplier)
            winners[:] = list(res.winner_ratings)
            losers[:] = list(res.loser_ratings)
        else:
            single = calculate_tournament_elo(winners[0], losers[0], multiplier)
            winners[0] = single.new_winner_rating
            losers[0] = single.new_loser_rating
            res = single
        changes.append(res.change if a_won else -res.change)
    return a, b, changes


def calculate_round_multiplier(round_number: int, total_rounds: int, base: int, final: int) -> int:
    """Linear interpolation from base (round 1) to final (last round)."""
    if total_rounds <= 1:
        return final
    progress = (round_number - 1) / (total_rounds - 1)
    return _round(base + (final - base) * progress)


def xp_for_result(won: bool, streak: int) -> int:
    if not won:
        return XP_LOSS
    return XP_WIN + XP_STREAK_BONUS * min(max(streak, 0), XP_STREAK_CAP)


def level_for_xp(xp: int) -> int:
    return math.floor(math.sqrt(xp / 100)) + 1


def next_streak(current: int, won: bool) -> int:
    return current + 1 if won else 0


def rating_tier(rating: int) -> str:
    for threshold, name in RATING_TIERS:
        if rating >= threshold:
            return name
    return RATING_TIERS[-1][1]
