"""
Standings and rank keys for group stages and Swiss rounds.

Rank keys sort ascending: lower = better.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence


@dataclass
class GroupRecord:
    enrollment_id: int
    points: int = 0
    wins: int = 0
    losses: int = 0
    point_diff: int = 0
    rating: int = 0


@dataclass
class SwissRecord:
    enrollment_id: int
    points: int = 0
    rating: int = 0
    opponents: Sequence[int] = ()
    bye_count: int = 0


def group_rank_key(record: GroupRecord) -> tuple:
    """Order: points, wins, point differential, rating, then enrollment id for determinism."""
    return (-record.points, -record.wins, -record.point_diff, -record.rating, record.enrollment_id)


def rank_group(records: Iterable[GroupRecord]) -> List[GroupRecord]:
    return sorted(records, key=group_rank_key)


def buchholz(record: SwissRecord, points_by_id: Dict[int, int]) -> int:
    """Sum of the points scored by every opponent faced."""
    return sum(points_by_id.get(opponent_id, 0) for opponent_id in record.opponents)


def swiss_pairing_key(record: SwissRecord) -> tuple:
    return (-record.points, -record.rating, record.enrollment_id)


def rank_swiss(records: Sequence[SwissRecord]) -> List[SwissRecord]:
    """Final Swiss order: points, Buchholz, rating."""
    points_by_id = {r.enrollment_id: r.points for r in records}
    return sorted(
        records,
        key=lambda r: (-r.points, -buchholz(r, points_by_id), -r.rating, r.enrollment_id),
    )
