"""
Best-of resolution and series validation.

Effective length of a match: match override → round value → tournament
default, floored at 1. Round values are assigned at generation time from the
stage a round belongs to.
"""
import math
from typing import List, Optional, Protocol

from rally.models.round import SEGMENT_FINALS, SEGMENT_GROUP, SEGMENT_SWISS
from rally.services.errors import ValidationError
from rally.services.score_parser import ParsedGames, parse_series_score

VALID_BEST_OF = (1, 3, 5, 7)


class BestOfConfig(Protocol):
    default_best_of: int
    group_stage_best_of: Optional[int]
    early_rounds_best_of: Optional[int]
    semifinals_best_of: Optional[int]
    finals_best_of: Optional[int]


def validate_best_of(value: int) -> int:
    if value not in VALID_BEST_OF:
        raise ValidationError(
            f"best-of must be one of {', '.join(str(v) for v in VALID_BEST_OF)}, got {value}",
            code="INVALID_BEST_OF",
        )
    return value


def resolve_best_of(match_best_of: Optional[int], round_best_of: Optional[int], tournament_best_of: int) -> int:
    for value in (match_best_of, round_best_of, tournament_best_of):
        if value is not None:
            return max(1, value)
    return 1


def games_needed_to_win(best_of: int) -> int:
    return math.ceil(best_of / 2)


def round_default_best_of(round_name: str, bracket_segment: str, config: BestOfConfig) -> int:
    """Best-of for a freshly generated round, classified by stage."""
    name = round_name.lower()
    default = config.default_best_of

    if bracket_segment in (SEGMENT_GROUP, SEGMENT_SWISS):
        return _first(config.group_stage_best_of, default)

    if bracket_segment == SEGMENT_FINALS or "final" in name:
        if "semi" in name:
            return _first(config.semifinals_best_of, config.finals_best_of, default)
        if "quarter" in name:
            return _first(config.early_rounds_best_of, default)
        return _first(config.finals_best_of, default)

    return _first(config.early_rounds_best_of, default)


def _first(*values: Optional[int]) -> int:
    for value in values:
        if value is not None:
            return value
    return 1


def validate_games(parsed: ParsedGames, best_of: int) -> str:
    """
    Check a played series against its length and return the winning side ("a" or "b").

    Rules: at least one game, no more than best_of games, no tied game, exactly
    one side reaches the required wins, and no game is played after the series
    was decided.
    """
    games = parsed.games
    if not games:
        raise ValidationError("At least one game must be played", code="INVALID_SCORES")
    if len(games) > best_of:
        raise ValidationError(
            f"Cannot have more than {best_of} games in a best-of-{best_of} series", code="INVALID_SCORES"
        )
    if any(a == b for a, b in games):
        raise ValidationError("Games cannot end in a tie", code="INVALID_SCORES")

    needed = games_needed_to_win(best_of)
    a_wins = parsed.side_a_wins
    b_wins = parsed.side_b_wins
    if a_wins < needed and b_wins < needed:
        raise ValidationError(f"No side has reached {needed} wins yet", code="INVALID_SCORES")
    if a_wins >= needed and b_wins >= needed:
        raise ValidationError(f"Both sides cannot reach {needed} wins", code="INVALID_SCORES")

    # Series ends the moment one side clinches
    running_a = running_b = 0
    for index, (a, b) in enumerate(games):
        if a > b:
            running_a += 1
        else:
            running_b += 1
        if (running_a == needed or running_b == needed) and index != len(games) - 1:
            raise ValidationError("Games recorded after the series was decided", code="INVALID_SCORES")

    return "a" if a_wins >= needed else "b"


def valid_series_scores(best_of: int) -> List[str]:
    needed = games_needed_to_win(best_of)
    return [f"{needed}-{loser}" for loser in range(needed)]


def validate_series_score(raw: str, best_of: int) -> bool:
    """Winner's wins first: "2-1" is valid for best-of-3, "1-2" is not."""
    parsed = parse_series_score(raw)
    if parsed is None:
        return False
    return raw.strip() in valid_series_scores(best_of)


def best_of_label(best_of: int) -> str:
    if best_of == 1:
        return "Single Game"
    return f"Best of {best_of}"
