"""
Bracket Generator: builds the round/match plan for every tournament format.

Generators are pure: they take seeded enrollment ids and tournament settings
and return a BracketPlan. Advance-from references are explicit SlotSource keys
(round number, segment, position, role); persistence resolves them to the
exact match ids it created, so no lookup ever guesses at a segment.

Round-1 matches with one participant are created as byes carrying their
winner; the advancement engine cascades them once the plan is persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from rally.models.match import MATCH_BYE, MATCH_PENDING, MATCH_READY, ROLE_LOSER, ROLE_WINNER
from rally.models.round import SEGMENT_FINALS, SEGMENT_GROUP, SEGMENT_LOSERS, SEGMENT_SWISS, SEGMENT_WINNERS
from rally.services import bracket_rules as rules
from rally.services.errors import ValidationError
from rally.utils.seeding import bracket_size, seed_positions, snake_groups
from rally.utils.standings import SwissRecord, swiss_pairing_key

logger = logging.getLogger(__name__)

SWISS_SEARCH_BUDGET = 200_000


@dataclass(frozen=True)
class SlotSource:
    round_number: int
    segment: str
    position: int
    role: str  # ROLE_WINNER | ROLE_LOSER


@dataclass
class PlannedMatch:
    position: int
    participant_a: Optional[int] = None
    participant_b: Optional[int] = None
    source_a: Optional[SlotSource] = None
    source_b: Optional[SlotSource] = None
    status: str = MATCH_PENDING
    winner: Optional[int] = None
    group_index: Optional[int] = None
    is_bracket_reset: bool = False


@dataclass
class PlannedRound:
    round_number: int
    name: str
    segment: str
    multiplier: int
    matches: List[PlannedMatch] = field(default_factory=list)

    @property
    def key(self) -> Tuple[int, str]:
        return (self.round_number, self.segment)


@dataclass
class BracketPlan:
    rounds: List[PlannedRound]
    total_rounds: int
    groups: List[List[int]] = field(default_factory=list)  # round-robin only: seeded ids per group

    def match_count(self) -> int:
        return sum(len(r.matches) for r in self.rounds)

    def bye_count(self) -> int:
        return sum(1 for r in self.rounds for m in r.matches if m.status == MATCH_BYE)


def _require_field(seeded: Sequence[int]) -> None:
    if len(seeded) < rules.MIN_PARTICIPANTS:
        raise ValidationError(
            f"At least {rules.MIN_PARTICIPANTS} participants are required, got {len(seeded)}",
            code="NOT_ENOUGH_PARTICIPANTS",
        )


def _first_round_match(position: int, a: Optional[int], b: Optional[int]) -> PlannedMatch:
    if a is not None and b is not None:
        return PlannedMatch(position=position, participant_a=a, participant_b=b, status=MATCH_READY)
    # One-sided (or empty) slot pair: a bye whose winner is the sole participant
    return PlannedMatch(
        position=position,
        participant_a=a if a is not None else b,
        status=MATCH_BYE,
        winner=a if a is not None else b,
    )


# =============================================================================
# Single elimination
# =============================================================================

def _elimination_tree(
    seeded: Sequence[int],
    *,
    first_round_number: int,
    name_prefix: str,
    multiplier_start: int,
    multiplier_end: int,
    last_segment: str,
) -> List[PlannedRound]:
    size = bracket_size(len(seeded))
    total = rules.elimination_rounds(size)
    slots: List[Optional[int]] = [seeded[s - 1] if s <= len(seeded) else None for s in seed_positions(size)]

    rounds: List[PlannedRound] = []
    for r in range(1, total + 1):
        round_number = first_round_number + r - 1
        segment = last_segment if r == total else SEGMENT_WINNERS
        planned = PlannedRound(
            round_number=round_number,
            name=f"{name_prefix}{rules.elimination_round_name(r, total)}",
            segment=segment,
            multiplier=rules.interpolated_multiplier(r, total, multiplier_start, multiplier_end),
        )
        match_count = size // (2 ** r)
        for i in range(match_count):
            position = i + 1
            if r == 1:
                planned.matches.append(_first_round_match(position, slots[2 * i], slots[2 * i + 1]))
                continue
            prev = rounds[-1]
            planned.matches.append(
                PlannedMatch(
                    position=position,
                    source_a=SlotSource(prev.round_number, prev.segment, 2 * i + 1, ROLE_WINNER),
                    source_b=SlotSource(prev.round_number, prev.segment, 2 * i + 2, ROLE_WINNER),
                )
            )
        rounds.append(planned)
    return rounds


def generate_single_elimination(
    seeded: Sequence[int],
    base_multiplier: int,
    finals_multiplier: int,
    *,
    first_round_number: int = 1,
    name_prefix: str = "",
) -> BracketPlan:
    """Seeded field padded to a power of two; seeds 1 and 2 can only meet in the final."""
    _require_field(seeded)
    rounds = _elimination_tree(
        seeded,
        first_round_number=first_round_number,
        name_prefix=name_prefix,
        multiplier_start=base_multiplier,
        multiplier_end=finals_multiplier,
        last_segment=SEGMENT_FINALS,
    )
    plan = BracketPlan(rounds=rounds, total_rounds=len(rounds))
    logger.debug("Single elimination: %d entrants, %d rounds, %d byes", len(seeded), plan.total_rounds, plan.bye_count())
    return plan


def generate_knockout(
    qualifiers: Sequence[int], base_multiplier: int, finals_multiplier: int, first_round_number: int
) -> BracketPlan:
    """Knockout after a group stage. Qualifiers arrive already ordered by group placement then rating."""
    return generate_single_elimination(
        qualifiers,
        rules.midpoint_multiplier(base_multiplier, finals_multiplier),
        finals_multiplier,
        first_round_number=first_round_number,
        name_prefix="Knockout ",
    )


# =============================================================================
# Double elimination
# =============================================================================

def generate_double_elimination(
    seeded: Sequence[int],
    base_multiplier: int,
    finals_multiplier: int,
    *,
    grand_final_reset: bool = True,
) -> BracketPlan:
    """
    Winners bracket, losers bracket, grand final and optional reset.

    Losers bracket for k winners rounds has 2(k-1) rounds:
      LB 1          losers of WB 1, paired
      LB even (2j)  LB winners vs losers dropping from WB j+1 (reversed order)
      LB odd  (>1)  LB winners paired
    Grand final: WB champion (A) vs LB champion (B). Two entrants skip the
    losers bracket; the grand final replays the WB final.
    """
    _require_field(seeded)
    size = bracket_size(len(seeded))
    mid = rules.midpoint_multiplier(base_multiplier, finals_multiplier)

    winners = _elimination_tree(
        seeded,
        first_round_number=1,
        name_prefix="Winners ",
        multiplier_start=base_multiplier,
        multiplier_end=mid,
        last_segment=SEGMENT_WINNERS,
    )
    k = len(winners)
    wb_final = winners[-1]

    losers: List[PlannedRound] = []
    lb_total = rules.losers_bracket_rounds(k)
    for lr in range(1, lb_total + 1):
        planned = PlannedRound(
            round_number=k + lr,
            name=rules.losers_round_name(lr),
            segment=SEGMENT_LOSERS,
            multiplier=rules.interpolated_multiplier(lr, lb_total, base_multiplier, mid),
        )
        count = rules.losers_round_match_count(size, lr)
        for i in range(count):
            position = i + 1
            if lr == 1:
                wb1 = winners[0]
                source_a = SlotSource(wb1.round_number, wb1.segment, 2 * i + 1, ROLE_LOSER)
                source_b = SlotSource(wb1.round_number, wb1.segment, 2 * i + 2, ROLE_LOSER)
            elif lr % 2 == 0:
                prev = losers[-1]
                dropping = winners[lr // 2]
                source_a = SlotSource(prev.round_number, prev.segment, position, ROLE_WINNER)
                source_b = SlotSource(dropping.round_number, dropping.segment, count - i, ROLE_LOSER)
            else:
                prev = losers[-1]
                source_a = SlotSource(prev.round_number, prev.segment, 2 * i + 1, ROLE_WINNER)
                source_b = SlotSource(prev.round_number, prev.segment, 2 * i + 2, ROLE_WINNER)
            planned.matches.append(PlannedMatch(position=position, source_a=source_a, source_b=source_b))
        losers.append(planned)

    gf_number = k + lb_total + 1
    if losers:
        lb_final = losers[-1]
        gf_b = SlotSource(lb_final.round_number, lb_final.segment, 1, ROLE_WINNER)
    else:
        gf_b = SlotSource(wb_final.round_number, wb_final.segment, 1, ROLE_LOSER)
    grand_final = PlannedRound(
        round_number=gf_number,
        name="Grand Finals",
        segment=SEGMENT_FINALS,
        multiplier=finals_multiplier,
        matches=[
            PlannedMatch(
                position=1,
                source_a=SlotSource(wb_final.round_number, wb_final.segment, 1, ROLE_WINNER),
                source_b=gf_b,
            )
        ],
    )
    rounds = winners + losers + [grand_final]

    if grand_final_reset:
        rounds.append(
            PlannedRound(
                round_number=gf_number + 1,
                name="Grand Finals Reset",
                segment=SEGMENT_FINALS,
                multiplier=finals_multiplier,
                matches=[
                    PlannedMatch(
                        position=1,
                        source_a=SlotSource(gf_number, SEGMENT_FINALS, 1, ROLE_WINNER),
                        source_b=SlotSource(gf_number, SEGMENT_FINALS, 1, ROLE_LOSER),
                        is_bracket_reset=True,
                    )
                ],
            )
        )

    plan = BracketPlan(rounds=rounds, total_rounds=len(rounds))
    logger.debug(
        "Double elimination: %d entrants, %d winners rounds, %d losers rounds, reset=%s",
        len(seeded),
        k,
        lb_total,
        grand_final_reset,
    )
    return plan


# =============================================================================
# Round robin (group stage)
# =============================================================================

def generate_round_robin_groups(
    seeded: Sequence[int],
    group_count: int,
    advance_per_group: int,
    base_multiplier: int,
) -> BracketPlan:
    """
    Snake the seeded field into groups and schedule every pair once.

    Each circle-method step becomes one group round holding all groups'
    matches for that step; positions run on across groups.
    """
    _require_field(seeded)
    rules.validate_group_config(len(seeded), group_count, advance_per_group)
    groups = snake_groups(seeded, group_count)

    by_step: Dict[int, List[Tuple[int, int, int]]] = {}
    for group_index, members in enumerate(groups):
        for step, a, b in rules.rr_pairings_by_round(len(members)):
            by_step.setdefault(step, []).append((group_index, members[a], members[b]))

    rounds: List[PlannedRound] = []
    for step in sorted(by_step):
        planned = PlannedRound(
            round_number=step,
            name=rules.group_round_name(step),
            segment=SEGMENT_GROUP,
            multiplier=base_multiplier,
        )
        for position, (group_index, a, b) in enumerate(by_step[step], start=1):
            planned.matches.append(
                PlannedMatch(
                    position=position,
                    participant_a=a,
                    participant_b=b,
                    status=MATCH_READY,
                    group_index=group_index,
                )
            )
        rounds.append(planned)

    return BracketPlan(rounds=rounds, total_rounds=len(rounds), groups=groups)


# =============================================================================
# Swiss
# =============================================================================

@dataclass
class SwissPairing:
    pairs: List[Tuple[int, int]]
    byes: List[int]


def _greedy_pairs(pool: List[int], history: Dict[int, set]) -> Optional[List[Tuple[int, int]]]:
    paired: set = set()
    pairs: List[Tuple[int, int]] = []
    for i, p in enumerate(pool):
        if p in paired:
            continue
        opponent = next(
            (q for q in pool[i + 1:] if q not in paired and q not in history.get(p, set())),
            None,
        )
        if opponent is None:
            return None
        paired.update((p, opponent))
        pairs.append((p, opponent))
    return pairs


def _search_pairs(
    pool: List[int], history: Dict[int, set], skips: int = 0
) -> Optional[Tuple[List[Tuple[int, int]], List[int]]]:
    """
    Depth-first search for a repeat-free pairing, in ranking order, that leaves
    exactly `skips` participants unpaired. Pairing is tried before skipping, so
    the unpaired end up as low in the ranking as possible.
    """
    budget = [SWISS_SEARCH_BUDGET]

    def solve(remaining: List[int], skips_left: int) -> Optional[Tuple[List[Tuple[int, int]], List[int]]]:
        if len(remaining) == skips_left:
            return [], list(remaining)
        budget[0] -= 1
        if budget[0] < 0:
            return None
        p, rest = remaining[0], remaining[1:]
        for idx, q in enumerate(rest):
            if q in history.get(p, set()):
                continue
            found = solve(rest[:idx] + rest[idx + 1:], skips_left)
            if found is not None:
                return [(p, q)] + found[0], found[1]
        if skips_left:
            found = solve(rest, skips_left - 1)
            if found is not None:
                return found[0], [p] + found[1]
        return None

    return solve(pool, skips)


def _greedy_pairs_with_byes(pool: List[int], history: Dict[int, set]) -> Tuple[List[Tuple[int, int]], List[int]]:
    paired: set = set()
    pairs: List[Tuple[int, int]] = []
    byes: List[int] = []
    for i, p in enumerate(pool):
        if p in paired:
            continue
        opponent = next(
            (q for q in pool[i + 1:] if q not in paired and q not in history.get(p, set())),
            None,
        )
        if opponent is None:
            byes.append(p)
            continue
        paired.update((p, opponent))
        pairs.append((p, opponent))
    return pairs, byes


def pair_swiss(records: Sequence[SwissRecord], *, rank_by_standing: bool = True) -> SwissPairing:
    """
    Pair a Swiss round.

    Participants are ranked by points then rating (or kept in the given seed
    order for round 1). Each takes the highest-ranked available opponent it has
    not met. With an odd field one participant sits out with a bye: the
    lowest-ranked among those with the fewest byes so far. If greedy pairing
    strands someone, a search looks for a repeat-free pairing.

    Pairings never repeat. When no full repeat-free pairing exists, the
    largest repeat-free set is played and everyone left over gets a bye.
    """
    ordered = sorted(records, key=swiss_pairing_key) if rank_by_standing else list(records)
    ids = [r.enrollment_id for r in ordered]
    history = {r.enrollment_id: set(r.opponents) for r in ordered}

    if len(ids) % 2 == 1:
        byes_taken = {r.enrollment_id: r.bye_count for r in ordered}
        rank = {entry_id: index for index, entry_id in enumerate(ids)}
        bye_candidates: List[Optional[int]] = sorted(ids, key=lambda e: (byes_taken[e], -rank[e]))
    else:
        bye_candidates = [None]

    for bye in bye_candidates:
        pool = [e for e in ids if e != bye]
        pairs = _greedy_pairs(pool, history)
        if pairs is None:
            found = _search_pairs(pool, history)
            pairs = found[0] if found is not None else None
        if pairs is not None:
            return SwissPairing(pairs=pairs, byes=[bye] if bye is not None else [])

    for skips in range(len(ids) % 2 + 2, len(ids) + 1, 2):
        found = _search_pairs(ids, history, skips)
        if found is not None:
            pairs, byes = found
            break
    else:
        pairs, byes = _greedy_pairs_with_byes(ids, history)
    logger.info("Swiss pairing left %d of %d participants without a new opponent; byes=%s", len(byes), len(ids), byes)
    return SwissPairing(pairs=pairs, byes=byes)


def generate_swiss_round(
    records: Sequence[SwissRecord],
    round_number: int,
    total_rounds: int,
    base_multiplier: int,
    finals_multiplier: int,
) -> BracketPlan:
    """One Swiss round: paired matches first, then any byes."""
    _require_field([r.enrollment_id for r in records])
    pairing = pair_swiss(records, rank_by_standing=round_number > 1)
    planned = PlannedRound(
        round_number=round_number,
        name=rules.swiss_round_name(round_number),
        segment=SEGMENT_SWISS,
        multiplier=rules.interpolated_multiplier(round_number, total_rounds, base_multiplier, finals_multiplier),
    )
    position = 0
    for a, b in pairing.pairs:
        position += 1
        planned.matches.append(PlannedMatch(position=position, participant_a=a, participant_b=b, status=MATCH_READY))
    for bye in pairing.byes:
        position += 1
        planned.matches.append(PlannedMatch(position=position, participant_a=bye, status=MATCH_BYE, winner=bye))
    logger.debug("Swiss round %d: %d pairs, byes=%s", round_number, len(pairing.pairs), pairing.byes)
    return BracketPlan(rounds=[planned], total_rounds=total_rounds)
