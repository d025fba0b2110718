"""
Score parsing for tournament games and quick series results.

Game scores are accepted in two shapes:
  [{"a": 11, "b": 7}, {"a": 9, "b": 11}]  → structured list, side A first
  "11-7 9-11 11-5" / "11-7, 9-11"         → display string

Series scores are "W-L" strings such as "2-1". Parsers return None on
malformed input; validation lives in best_of.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

SERIES_SCORE_RE = re.compile(r"^(\d+)-(\d+)$")


@dataclass
class ParsedGames:
    games: List[Tuple[int, int]]  # (side_a_points, side_b_points) per game
    side_a_wins: int
    side_b_wins: int
    side_a_points: int
    side_b_points: int

    @property
    def point_diff(self) -> int:
        """Side A's point differential across the series."""
        return self.side_a_points - self.side_b_points


@dataclass
class SeriesScore:
    winner_wins: int
    loser_wins: int

    def display(self) -> str:
        return f"{self.winner_wins}-{self.loser_wins}"


def parse_games(raw: Union[str, List[Any], None]) -> Optional[ParsedGames]:
    if raw is None:
        return None
    if isinstance(raw, str):
        return _parse_games_string(raw.strip())
    if isinstance(raw, list):
        return _parse_structured_games(raw)
    return None


def _parse_structured_games(items: list) -> Optional[ParsedGames]:
    games: List[Tuple[int, int]] = []
    for item in items:
        if isinstance(item, dict):
            a, b = item.get("a"), item.get("b")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            a, b = item
        else:
            return None
        try:
            games.append((int(a), int(b)))
        except (TypeError, ValueError):
            return None
    return _summarize(games)


def _parse_games_string(raw: str) -> Optional[ParsedGames]:
    """Parse strings like '11-7', '11-7 9-11 11-5', '11-7, 9-11'."""
    normalized = raw.replace(",", " ").strip()
    games: List[Tuple[int, int]] = []
    for part in normalized.split():
        pair = part.split("-")
        if len(pair) != 2:
            return None
        try:
            games.append((int(pair[0]), int(pair[1])))
        except ValueError:
            return None
    return _summarize(games)


def _summarize(games: List[Tuple[int, int]]) -> ParsedGames:
    return ParsedGames(
        games=games,
        side_a_wins=sum(1 for a, b in games if a > b),
        side_b_wins=sum(1 for a, b in games if b > a),
        side_a_points=sum(a for a, _ in games),
        side_b_points=sum(b for _, b in games),
    )


def parse_series_score(raw: str) -> Optional[SeriesScore]:
    """'2-1' → SeriesScore(2, 1). The larger number is always the winner's."""
    m = SERIES_SCORE_RE.match((raw or "").strip())
    if not m:
        return None
    first, second = int(m.group(1)), int(m.group(2))
    return SeriesScore(winner_wins=max(first, second), loser_wins=min(first, second))


def games_to_json(games: List[Tuple[int, int]]) -> List[dict]:
    return [{"a": a, "b": b} for a, b in games]
