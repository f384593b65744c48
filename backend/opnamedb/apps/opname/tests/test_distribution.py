from __future__ import annotations

from datetime import date
from fractions import Fraction

import pytest

from opnamedb.apps.opname.distribution import (
    BatchStock,
    ResidualAdjustment,
    distribute_fifo,
    distribute_proportional,
    round_half_up,
    validate_composition,
)
from opnamedb.errors import InvalidCountComposition, InvalidInput


def _stock(batch_id: int, system: int, month: int) -> BatchStock:
    return BatchStock(batch_id=batch_id, system_stock=system, expiry_date=date(2027, month, 1))


def test_round_half_up_rounds_halves_away_from_even():
    assert round_half_up(Fraction(5, 2)) == 3
    assert round_half_up(Fraction(7, 2)) == 4
    assert round_half_up(Fraction(-5, 2)) == -2
    assert round_half_up(Fraction(25, 3)) == 8
    assert round_half_up(4) == 4


def test_validate_composition_accepts_spoiled_zero_count():
    validate_composition(0, 3, 2)


def test_validate_composition_rejects_expired_and_damaged_above_physical():
    with pytest.raises(InvalidCountComposition):
        validate_composition(5, 3, 3)


@pytest.mark.parametrize("values", [(-1, 0, 0), (5, -1, 0), (5, 0, -2), (5.5, 0, 0), (True, 0, 0)])
def test_validate_composition_rejects_bad_numbers(values):
    with pytest.raises(InvalidInput):
        validate_composition(*values)


def test_single_batch_takes_the_whole_count():
    result = distribute_proportional([_stock(1, 10, 1)], 17, 2, 1)

    [only] = result.allocations
    assert (only.physical_stock, only.expired_stock, only.damaged_stock) == (17, 2, 1)
    assert only.difference == -7
    assert result.residual is None


def test_proportional_split_follows_system_stock():
    result = distribute_proportional([_stock(2, 70, 2), _stock(1, 30, 1)], 50)

    assert [(a.batch_id, a.physical_stock) for a in result.allocations] == [(1, 15), (2, 35)]
    assert result.residual is None
    assert result.allocated_physical == 50


def test_proportional_split_of_two_batches_keeps_total_difference():
    result = distribute_proportional([_stock(1, 10, 1), _stock(2, 20, 2)], 25)

    assert [a.physical_stock for a in result.allocations] == [8, 17]
    assert sum(a.difference for a in result.allocations) == 5


def test_expired_and_damaged_follow_each_batch_share():
    result = distribute_proportional([_stock(1, 30, 1), _stock(2, 70, 2)], 50, 10, 5)

    first, second = result.allocations
    assert (first.expired_stock, first.damaged_stock) == (3, 2)
    assert (second.expired_stock, second.damaged_stock) == (7, 3)


def test_zero_physical_splits_spoilage_by_system_weight():
    result = distribute_proportional([_stock(1, 30, 1), _stock(2, 70, 2)], 0, 4, 0)

    assert [a.physical_stock for a in result.allocations] == [0, 0]
    assert [a.expired_stock for a in result.allocations] == [1, 3]


def test_rounding_leftover_becomes_residual():
    batches = [_stock(1, 1, 1), _stock(2, 1, 2), _stock(3, 1, 3)]

    result = distribute_proportional(batches, 4)

    assert [a.physical_stock for a in result.allocations] == [1, 1, 1]
    assert result.residual == ResidualAdjustment(remainder=1, total_system_stock=3)
    assert isinstance(result.entries[-1], ResidualAdjustment)


def test_empty_system_stock_splits_evenly():
    result = distribute_proportional([_stock(1, 0, 1), _stock(2, 0, 2)], 4)

    assert [a.physical_stock for a in result.allocations] == [2, 2]


def test_distribution_needs_batches():
    with pytest.raises(InvalidInput):
        distribute_proportional([], 1)


def test_fifo_fills_earliest_batches_first():
    result = distribute_fifo([_stock(2, 10, 2), _stock(1, 5, 1)], 8)

    assert [(a.batch_id, a.physical_stock) for a in result.allocations] == [(1, 5), (2, 3)]
    assert result.residual is None


def test_fifo_surplus_beyond_system_stock_is_residual():
    result = distribute_fifo([_stock(1, 5, 1), _stock(2, 10, 2)], 20)

    assert [a.physical_stock for a in result.allocations] == [5, 10]
    assert result.residual == ResidualAdjustment(remainder=5, total_system_stock=15)


def test_fifo_single_batch_within_stock():
    result = distribute_fifo([_stock(1, 5, 1)], 3, 1, 0)

    [only] = result.allocations
    assert (only.physical_stock, only.expired_stock) == (3, 1)
    assert result.for_batch(1) is only


def test_expired_split_never_exceeds_counted_total():
    result = distribute_proportional([_stock(1, 10, 1), _stock(2, 10, 2)], 10, 1, 3)

    assert [a.expired_stock for a in result.allocations] == [1, 0]
    assert [a.damaged_stock for a in result.allocations] == [2, 1]
