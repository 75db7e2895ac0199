"""
Inventory Module

Per-account holdings keyed by commodity. Units held at cost are tracked
as lots so reductions can be booked against their acquisition cost;
units without cost collapse into a single plain position per commodity.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from enum import Enum

from .currency import Amount, format_decimal


class BookingMethod(Enum):
    """How a reduction picks lots when the cost spec does not pin one"""
    STRICT = "STRICT"    # Exactly one lot must match (or the whole inventory)
    FIFO = "FIFO"        # Oldest lots first
    LIFO = "LIFO"        # Newest lots first
    AVERAGE = "AVERAGE"  # Merge matching lots at their average cost
    NONE = "NONE"        # No matching, reductions are kept as negative lots

    @classmethod
    def from_name(cls, name: str) -> Optional['BookingMethod']:
        try:
            return cls(name.strip().upper())
        except ValueError:
            return None


class BookingError(Exception):
    """A reduction cannot be booked against the inventory"""


@dataclass(frozen=True)
class LotSpec:
    """Cost basis identifying a lot: per-unit cost, acquisition date, label"""
    cost: Optional[Decimal] = None
    cost_currency: Optional[str] = None
    date: Optional[date] = None
    label: str = ""

    def is_empty(self) -> bool:
        return self.cost is None and self.date is None and not self.label

    def matches(self, other: Optional['LotSpec']) -> bool:
        """Every field given in this spec must equal the other's"""
        if other is None:
            return False
        if self.cost is not None and (self.cost != other.cost or self.cost_currency != other.cost_currency):
            return False
        if self.date is not None and self.date != other.date:
            return False
        if self.label and self.label != other.label:
            return False
        return True

    def to_string(self) -> str:
        parts = []
        if self.cost is not None:
            parts.append(f"{format_decimal(self.cost)} {self.cost_currency}")
        if self.date is not None:
            parts.append(self.date.isoformat())
        if self.label:
            parts.append(f'"{self.label}"')
        return "{" + ", ".join(parts) + "}"


@dataclass
class Lot:
    """Units of one commodity, optionally held at cost"""
    currency: str
    units: Decimal
    spec: Optional[LotSpec] = None

    @property
    def book_value(self) -> Optional[Amount]:
        if self.spec is None or self.spec.cost is None:
            return None
        return Amount(self.units * self.spec.cost, self.spec.cost_currency)

    def to_string(self) -> str:
        text = f"{format_decimal(self.units)} {self.currency}"
        if self.spec is not None and not self.spec.is_empty():
            text = f"{text} {self.spec.to_string()}"
        return text


@dataclass(frozen=True)
class Reduction:
    """
    Planned removal of units from the inventory.
    `lot` is None for AVERAGE and NONE bookings, which rebuild lots instead.
    """
    units: Decimal
    cost: Optional[Decimal] = None
    cost_currency: Optional[str] = None
    lot: Optional[Lot] = None

    @property
    def weight(self) -> Optional[Amount]:
        """Negative book value removed by this reduction"""
        if self.cost is None:
            return None
        return Amount(-(self.units * self.cost), self.cost_currency)


class Inventory:
    """
    Holdings of one account. Only the engine mutates an inventory, and only
    while applying transactions and padding.
    """

    def __init__(self):
        self._lots: Dict[str, List[Lot]] = {}

    def add(self, currency: str, units: Decimal, spec: Optional[LotSpec] = None) -> None:
        """Add units, merging into an existing lot with the same spec"""
        lots = self._lots.setdefault(currency, [])
        for lot in lots:
            if lot.spec == spec:
                lot.units += units
                if lot.units == 0 and spec is not None:
                    self._remove(currency, lot)
                return
        lots.append(Lot(currency, units, spec))

    def get(self, currency: str) -> Decimal:
        """Total units of a commodity across all lots"""
        total = Decimal('0')
        for lot in self._lots.get(currency, []):
            total += lot.units
        return total

    def lots(self, currency: str) -> List[Lot]:
        return list(self._lots.get(currency, []))

    def currencies(self) -> List[str]:
        return sorted(self._lots)

    def is_empty(self) -> bool:
        return not self._lots

    def balances(self) -> Dict[str, Decimal]:
        """Currency to quantity projection of the inventory"""
        return {currency: self.get(currency) for currency in self.currencies()}

    def plan_reduction(
        self,
        currency: str,
        units: Decimal,
        spec: LotSpec,
        method: BookingMethod
    ) -> List[Reduction]:
        """
        Work out which lots a negative posting would reduce, without
        mutating anything.

        Args:
            currency: Commodity being reduced
            units: Negative quantity of the posting
            spec: Cost spec of the posting (possibly empty)
            method: Booking method of the account

        Returns:
            Reductions to hand to apply_reduction()

        Raises:
            BookingError: If no lot matches or holdings are insufficient
        """
        if units >= 0:
            raise BookingError(f"reduction must be negative, got {format_decimal(units)}")
        needed = -units

        if method == BookingMethod.NONE:
            return [Reduction(needed, spec.cost, spec.cost_currency)]

        candidates = [lot for lot in self._lots.get(currency, [])
                      if lot.spec is not None and (spec.is_empty() or spec.matches(lot.spec))]
        if not candidates:
            if spec.is_empty():
                raise BookingError(f"no lots of {currency} held at cost")
            raise BookingError(f"no lot matches {spec.to_string()}")

        available = sum((lot.units for lot in candidates), Decimal('0'))
        if available < needed:
            raise BookingError(
                f"insufficient units: have {format_decimal(available)}, need {format_decimal(needed)}")

        if method == BookingMethod.AVERAGE:
            return [self._average_reduction(candidates, needed)]

        if method == BookingMethod.STRICT and len(candidates) > 1 and needed != available:
            raise BookingError(f"ambiguous match: {len(candidates)} lots match {spec.to_string()}")

        if method == BookingMethod.LIFO:
            ordered = sorted(reversed(candidates), key=_lot_date, reverse=True)
        else:
            ordered = sorted(candidates, key=_lot_date)

        reductions = []
        remaining = needed
        for lot in ordered:
            if remaining == 0:
                break
            take = min(lot.units, remaining)
            if take <= 0:
                continue
            reductions.append(Reduction(take, lot.spec.cost, lot.spec.cost_currency, lot))
            remaining -= take
        return reductions

    def _average_reduction(self, candidates: List[Lot], needed: Decimal) -> Reduction:
        cost_currencies = {lot.spec.cost_currency for lot in candidates if lot.spec.cost is not None}
        if len(cost_currencies) > 1:
            raise BookingError("cannot average lots held in different cost currencies")
        total_units = sum((lot.units for lot in candidates), Decimal('0'))
        total_cost = sum((lot.units * lot.spec.cost for lot in candidates if lot.spec.cost is not None),
                         Decimal('0'))
        if not cost_currencies:
            return Reduction(needed)
        return Reduction(needed, total_cost / total_units, cost_currencies.pop())

    def apply_reduction(
        self,
        currency: str,
        reductions: List[Reduction],
        spec: LotSpec,
        method: BookingMethod
    ) -> None:
        """Apply a plan produced by plan_reduction()"""
        if method == BookingMethod.NONE:
            for reduction in reductions:
                self._lots.setdefault(currency, []).append(Lot(currency, -reduction.units, spec))
            return

        if method == BookingMethod.AVERAGE:
            self._apply_average(currency, reductions[0], spec)
            return

        for reduction in reductions:
            lot = reduction.lot
            lot.units -= reduction.units
            if lot.units == 0:
                self._remove(currency, lot)

    def _apply_average(self, currency: str, reduction: Reduction, spec: LotSpec) -> None:
        candidates = [lot for lot in self._lots.get(currency, [])
                      if lot.spec is not None and (spec.is_empty() or spec.matches(lot.spec))]
        total_units = sum((lot.units for lot in candidates), Decimal('0'))
        earliest = min((lot.spec.date for lot in candidates if lot.spec.date is not None), default=None)
        for lot in candidates:
            self._remove(currency, lot)

        remaining = total_units - reduction.units
        if remaining != 0:
            merged = LotSpec(reduction.cost, reduction.cost_currency, earliest)
            self._lots.setdefault(currency, []).append(Lot(currency, remaining, merged))

    def _remove(self, currency: str, target: Lot) -> None:
        lots = [lot for lot in self._lots.get(currency, []) if lot is not target]
        if lots:
            self._lots[currency] = lots
        else:
            self._lots.pop(currency, None)

    def copy(self) -> 'Inventory':
        clone = Inventory()
        for currency, lots in self._lots.items():
            clone._lots[currency] = [replace(lot) for lot in lots]
        return clone

    def to_string(self) -> str:
        if self.is_empty():
            return "{}"
        parts = [lot.to_string() for currency in self.currencies() for lot in self._lots[currency]]
        return "{" + ", ".join(parts) + "}"

    def __repr__(self) -> str:
        return f"Inventory({self.to_string()})"


def _lot_date(lot: Lot) -> date:
    if lot.spec is None or lot.spec.date is None:
        return date.min
    return lot.spec.date
