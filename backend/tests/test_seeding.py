"""Seed ordering, bracket layout and group snake draft."""
import pytest

from rally.utils.seeding import (
    SeedEntry,
    bracket_size,
    participant_rating,
    seed_positions,
    snake_groups,
    sort_by_seed,
)


def test_rating_orders_unpinned_entries():
    entries = [SeedEntry(1, 1000), SeedEntry(2, 1300), SeedEntry(3, 1150)]
    assert [e.enrollment_id for e in sort_by_seed(entries)] == [2, 3, 1]


def test_pinned_seeds_rank_above_rating_and_keep_their_order():
    entries = [
        SeedEntry(1, 1500),
        SeedEntry(2, 900, seed=2, seed_overridden=True),
        SeedEntry(3, 800, seed=1, seed_overridden=True),
        SeedEntry(4, 1400),
    ]
    assert [e.enrollment_id for e in sort_by_seed(entries)] == [3, 2, 1, 4]


def test_equal_ratings_keep_enrollment_order():
    entries = [SeedEntry(5, 1000), SeedEntry(6, 1000), SeedEntry(7, 1000)]
    assert [e.enrollment_id for e in sort_by_seed(entries)] == [5, 6, 7]


def test_doubles_participant_rating_is_rounded_mean():
    assert participant_rating(1000) == 1000
    assert participant_rating(1000, 1201) == 1101


@pytest.mark.parametrize("count,size", [(2, 2), (3, 4), (4, 4), (5, 8), (9, 16), (16, 16)])
def test_bracket_size(count, size):
    assert bracket_size(count) == size


def test_seed_positions():
    assert seed_positions(2) == [1, 2]
    assert seed_positions(4) == [1, 4, 2, 3]
    assert seed_positions(8) == [1, 8, 4, 5, 2, 7, 3, 6]


def test_top_two_seeds_sit_in_opposite_halves():
    for size in (4, 8, 16, 32):
        order = seed_positions(size)
        half = size // 2
        assert 1 in order[:half]
        assert 2 in order[half:]


def test_seed_positions_rejects_non_power_of_two():
    with pytest.raises(ValueError):
        seed_positions(6)


def test_snake_groups():
    assert snake_groups([1, 2, 3, 4, 5, 6, 7, 8], 2) == [[1, 4, 5, 8], [2, 3, 6, 7]]
    assert snake_groups([1, 2, 3, 4, 5, 6], 3) == [[1, 6], [2, 5], [3, 4]]
