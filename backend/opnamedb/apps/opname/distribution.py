"""
Apportioning one physical count across the batches of a product.

Staff count a product on the shelf, not batch by batch. This module turns
that single (physical, expired, damaged) triple back into per-batch figures.
It is pure: callers read and lock the batches, hand over snapshots, and
persist whatever comes back.

Batches are always walked in the same order as stock allocation
(expiry_date, arrival_date, batch_id), so a count and a sale agree on which
batch is "first".

Rounding is half-up on exact fractions. Python's built-in `round` rounds
half to even, which would move units between batches depending on parity.

Whatever rounding (or surplus) leaves unassigned is returned as an explicit
`ResidualAdjustment` so it can be recorded instead of being lost.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple, Union

from opnamedb.errors import InvalidCountComposition, InvalidInput


@dataclass(frozen=True)
class BatchStock:
    """Snapshot of one batch as seen by a count."""

    batch_id: int
    system_stock: int
    expiry_date: Optional[date] = None
    arrival_date: Optional[date] = None

    @property
    def sort_key(self) -> tuple:
        return (
            self.expiry_date or date.max,
            self.arrival_date or date.max,
            self.batch_id,
        )


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: int
    system_stock: int
    physical_stock: int
    expired_stock: int
    damaged_stock: int

    @property
    def difference(self) -> int:
        return self.system_stock - self.physical_stock


@dataclass(frozen=True)
class ResidualAdjustment:
    """Counted units no batch absorbed (positive) or over-assigned (negative)."""

    remainder: int
    total_system_stock: int


DistributionEntry = Union[BatchAllocation, ResidualAdjustment]


@dataclass(frozen=True)
class Distribution:
    entries: Tuple[DistributionEntry, ...]

    @property
    def allocations(self) -> List[BatchAllocation]:
        return [e for e in self.entries if isinstance(e, BatchAllocation)]

    @property
    def residual(self) -> Optional[ResidualAdjustment]:
        for entry in self.entries:
            if isinstance(entry, ResidualAdjustment):
                return entry
        return None

    @property
    def allocated_physical(self) -> int:
        return sum(a.physical_stock for a in self.allocations)

    def for_batch(self, batch_id: int) -> Optional[BatchAllocation]:
        for allocation in self.allocations:
            if allocation.batch_id == batch_id:
                return allocation
        return None


def round_half_up(value: Union[int, Fraction]) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(Fraction(value) + Fraction(1, 2))


def validate_composition(physical: int, expired: int, damaged: int) -> None:
    """
    Reject impossible counts before anything is written.

    Expired and damaged units are part of the physical count, so together
    they cannot exceed it. A physical count of zero is the exception: it
    records a batch that was found entirely spoiled or destroyed.
    """
    for field, value in (("physical_stock", physical), ("expired_stock", expired), ("damaged_stock", damaged)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInput(f"{field} must be a whole number.", field=field, value=value)
        if value < 0:
            raise InvalidInput(f"{field} cannot be negative.", field=field, value=value)

    if physical > 0 and expired + damaged > physical:
        raise InvalidCountComposition(
            "Expired and damaged stock cannot exceed the physical count.",
            physical_stock=physical,
            expired_stock=expired,
            damaged_stock=damaged,
        )


def _canonical(batches: Sequence[BatchStock]) -> List[BatchStock]:
    if not batches:
        raise InvalidInput("At least one batch is required to distribute a count.")
    return sorted(batches, key=lambda b: b.sort_key)


def _weights(batches: Sequence[BatchStock]) -> List[Fraction]:
    total = sum(max(b.system_stock, 0) for b in batches)
    if total == 0:
        return [Fraction(1, len(batches))] * len(batches)
    return [Fraction(max(b.system_stock, 0), total) for b in batches]


def _single(batch: BatchStock, physical: int, expired: int, damaged: int) -> Distribution:
    return Distribution(
        entries=(
            BatchAllocation(
                batch_id=batch.batch_id,
                system_stock=batch.system_stock,
                physical_stock=physical,
                expired_stock=expired,
                damaged_stock=damaged,
            ),
        )
    )


def _split_by_share(total: int, share: int, physical: int, weight: Fraction) -> int:
    # With nothing counted the batch's own weight stands in for its share.
    if physical == 0:
        return round_half_up(total * weight)
    return round_half_up(Fraction(total * share, physical))


def _finish(
    allocations: List[BatchAllocation],
    physical: int,
    total_system: int,
) -> Distribution:
    entries: List[DistributionEntry] = list(allocations)
    remainder = physical - sum(a.physical_stock for a in allocations)
    if remainder != 0:
        entries.append(ResidualAdjustment(remainder=remainder, total_system_stock=total_system))
    return Distribution(entries=tuple(entries))


def distribute_proportional(
    batches: Sequence[BatchStock],
    physical: int,
    expired: int = 0,
    damaged: int = 0,
) -> Distribution:
    """
    Split a counted total across batches in proportion to their system stock.

    A single batch takes everything. Otherwise each batch, in canonical order,
    gets min(remaining, round_half_up(physical * system / total_system)).
    Expired and damaged follow each batch's share of the physical count and
    are not capped by what the batch can hold, only by what is left of their
    own totals. Leftover physical units come back as a ResidualAdjustment.
    """
    validate_composition(physical, expired, damaged)
    ordered = _canonical(batches)
    if len(ordered) == 1:
        return _single(ordered[0], physical, expired, damaged)

    total_system = sum(b.system_stock for b in ordered)
    weights = _weights(ordered)

    allocations: List[BatchAllocation] = []
    remaining = physical
    remaining_expired, remaining_damaged = expired, damaged
    for batch, weight in zip(ordered, weights):
        share = min(remaining, round_half_up(physical * weight))
        expired_share = min(remaining_expired, _split_by_share(expired, share, physical, weight))
        damaged_share = min(remaining_damaged, _split_by_share(damaged, share, physical, weight))
        allocations.append(
            BatchAllocation(
                batch_id=batch.batch_id,
                system_stock=batch.system_stock,
                physical_stock=share,
                expired_stock=expired_share,
                damaged_stock=damaged_share,
            )
        )
        remaining -= share
        remaining_expired -= expired_share
        remaining_damaged -= damaged_share

    return _finish(allocations, physical, total_system)


def distribute_fifo(
    batches: Sequence[BatchStock],
    physical: int,
    expired: int = 0,
    damaged: int = 0,
) -> Distribution:
    """
    Fill batches up to their system stock in canonical order.

    Used for admin direct counts: the earliest-expiring batches are assumed
    to be the ones still on the shelf. Units beyond the total system stock
    become the residual.
    """
    validate_composition(physical, expired, damaged)
    ordered = _canonical(batches)
    if len(ordered) == 1 and physical <= max(ordered[0].system_stock, 0):
        return _single(ordered[0], physical, expired, damaged)

    total_system = sum(b.system_stock for b in ordered)
    weights = _weights(ordered)

    allocations: List[BatchAllocation] = []
    remaining = physical
    remaining_expired, remaining_damaged = expired, damaged
    for batch, weight in zip(ordered, weights):
        share = min(remaining, max(batch.system_stock, 0))
        expired_share = min(remaining_expired, _split_by_share(expired, share, physical, weight))
        damaged_share = min(remaining_damaged, _split_by_share(damaged, share, physical, weight))
        allocations.append(
            BatchAllocation(
                batch_id=batch.batch_id,
                system_stock=batch.system_stock,
                physical_stock=share,
                expired_stock=expired_share,
                damaged_stock=damaged_share,
            )
        )
        remaining -= share
        remaining_expired -= expired_share
        remaining_damaged -= damaged_share

    return _finish(allocations, physical, total_system)
