"""
Bracket Rules: round naming, rating multipliers, group sizing, round-robin schedule.

All generators import from here. Do NOT duplicate these rules elsewhere.
"""

import math
from typing import List, Optional, Tuple

from rally.services.errors import ValidationError
from rally.services.rating import calculate_round_multiplier

DEFAULT_ADVANCE_PER_GROUP = 2
PLAYERS_PER_GROUP_TARGET = 4
MIN_PARTICIPANTS = 2


# =============================================================================
# Round naming
# =============================================================================

def elimination_round_name(round_number: int, total_rounds: int) -> str:
    """
    Finals / Semifinals / Quarterfinals / Round of N, counted from the end.

    A 5-round bracket: Round of 32, Round of 16, Quarterfinals, Semifinals, Finals.
    """
    from_end = total_rounds - round_number + 1
    if from_end == 1:
        return "Finals"
    if from_end == 2:
        return "Semifinals"
    if from_end == 3:
        return "Quarterfinals"
    return f"Round of {2 ** from_end}"


def losers_round_name(losers_round: int) -> str:
    return f"Losers Round {losers_round}"


def group_round_name(step: int) -> str:
    return f"Group Stage - Round {step}"


def swiss_round_name(round_number: int) -> str:
    return f"Swiss Round {round_number}"


GROUP_NAMES = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def group_name(index: int) -> str:
    if index < len(GROUP_NAMES):
        return GROUP_NAMES[index]
    return f"G{index + 1}"


# =============================================================================
# Multipliers
# =============================================================================

def midpoint_multiplier(base: int, final: int) -> int:
    return math.floor((base + final) / 2 + 0.5)


def interpolated_multiplier(round_index: int, total: int, start: int, end: int) -> int:
    return calculate_round_multiplier(round_index, total, start, end)


# =============================================================================
# Sizing
# =============================================================================

def elimination_rounds(participant_count: int) -> int:
    """⌈log2 N⌉ rounds for N >= 2."""
    return max(1, math.ceil(math.log2(participant_count)))


def default_swiss_rounds(participant_count: int) -> int:
    return max(1, math.ceil(math.log2(participant_count)))


def losers_bracket_rounds(winners_rounds: int) -> int:
    return 2 * (winners_rounds - 1)


def losers_round_match_count(bracket_size: int, losers_round: int) -> int:
    return bracket_size // (2 ** (math.ceil(losers_round / 2) + 1))


def resolve_group_count(participant_count: int, configured: Optional[int]) -> int:
    if configured is not None:
        return configured
    return max(1, math.ceil(participant_count / PLAYERS_PER_GROUP_TARGET))


def validate_group_config(participant_count: int, group_count: int, advance_per_group: int) -> None:
    """
    Fail when the group stage cannot be built or cannot feed a knockout.

    - at least one group, every group holds two or more participants
    - at least one participant advances per group
    - advance_per_group never exceeds the smallest group
    """
    if group_count < 1:
        raise ValidationError("Group count must be at least 1", code="INVALID_GROUP_COUNT")
    smallest = participant_count // group_count
    if smallest < 2:
        raise ValidationError(
            f"{participant_count} participants cannot fill {group_count} groups of at least 2",
            code="INVALID_GROUP_COUNT",
        )
    if advance_per_group < 1:
        raise ValidationError("At least one participant must advance per group", code="INVALID_ADVANCE_COUNT")
    if advance_per_group > smallest:
        raise ValidationError(
            f"Cannot advance {advance_per_group} per group when the smallest group has {smallest} participants",
            code="ADVANCE_EXCEEDS_GROUP_SIZE",
        )


# =============================================================================
# Round-robin schedule
# =============================================================================

def rr_pairings_by_round(group_size: int) -> List[Tuple[int, int, int]]:
    """
    Circle-method round-robin. Returns (step, idx_a, idx_b) with 0-based group indices.

    Odd sizes get a phantom bye position; pairs touching it are skipped, so
    every pair meets exactly once in group_size - 1 (even) or group_size (odd) steps.
    """
    if group_size < 2:
        return []
    n2 = group_size + 1 if group_size % 2 == 1 else group_size
    bye_idx = group_size if group_size % 2 == 1 else -1
    half = n2 // 2
    positions = list(range(n2))

    result: List[Tuple[int, int, int]] = []
    for step in range(1, n2):
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            result.append((step, a, b))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return result
