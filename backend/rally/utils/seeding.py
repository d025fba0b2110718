"""
Seeding: order enrolled participants into seeds and lay seeds out on a bracket.

Ordering rules (first that applies):
  1. both entries carry a manual seed override → lower seed first
  2. an overridden entry ranks above a non-overridden one
  3. higher participant rating first
Ties keep enrollment order.
"""

from dataclasses import dataclass
from functools import cmp_to_key
from typing import List, Optional, Sequence

from rally.services.rating import team_rating


@dataclass
class SeedEntry:
    """Lightweight struct for seeding input."""

    enrollment_id: int
    rating: int
    seed: Optional[int] = None
    seed_overridden: bool = False


def participant_rating(player_rating: int, partner_rating: Optional[int] = None) -> int:
    """Singles: the player's rating. Doubles: rounded mean of the pair."""
    if partner_rating is None:
        return player_rating
    return team_rating(player_rating, partner_rating)


def _compare(a: SeedEntry, b: SeedEntry) -> int:
    if a.seed_overridden and b.seed_overridden:
        return (a.seed or 0) - (b.seed or 0)
    if a.seed_overridden:
        return -1
    if b.seed_overridden:
        return 1
    return b.rating - a.rating


def sort_by_seed(entries: Sequence[SeedEntry]) -> List[SeedEntry]:
    return sorted(entries, key=cmp_to_key(_compare))


def bracket_size(participant_count: int) -> int:
    """Smallest power of two >= participant_count (minimum 2)."""
    size = 2
    while size < participant_count:
        size *= 2
    return size


def seed_positions(size: int) -> List[int]:
    """Bracket position order of seeds for a power-of-two bracket.

      2 -> [1, 2]
      4 -> [1, 4, 2, 3]
      8 -> [1, 8, 4, 5, 2, 7, 3, 6]

    Consecutive pairs meet in round 1; seeds 1 and 2 can only meet in the final.
    """
    if size < 2 or size & (size - 1):
        raise ValueError(f"bracket size must be a power of two >= 2, got {size}")
    if size == 2:
        return [1, 2]
    expanded: List[int] = []
    for seed in seed_positions(size // 2):
        expanded.append(seed)
        expanded.append(size + 1 - seed)
    return expanded


def snake_groups(seeded_ids: Sequence[int], group_count: int) -> List[List[int]]:
    """Snake-draft seeded ids into groups: A,B,C,C,B,A,A,B,..."""
    groups: List[List[int]] = [[] for _ in range(group_count)]
    for index, entry_id in enumerate(seeded_ids):
        cycle, offset = divmod(index, group_count)
        target = offset if cycle % 2 == 0 else group_count - 1 - offset
        groups[target].append(entry_id)
    return groups
