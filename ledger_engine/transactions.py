"""
Transaction Balancer Module

Computes posting weights, infers the single missing amount (or cost) of
a transaction, books lot reductions and checks that every currency sums
to zero within tolerance. Nothing is applied to the ledger here; the
result carries working inventories the processor installs on success.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from .accounts import AccountRegistry
from .currency import Amount, ToleranceConfig
from .directives import Posting, Transaction
from .errors import (
    ValidationError, AmbiguousResidualAmountError, TransactionImbalanceError,
    CurrencyConstraintError, InvalidCostError, InventoryReductionError,
)
from .inventory import BookingError, BookingMethod, Inventory, LotSpec, Reduction

logger = logging.getLogger("ledger_engine.transactions")


def price_weight(units: Amount, price: Amount, is_total: bool) -> Amount:
    """Weight of a posting converted at a price: per unit, or signed total for @@"""
    if is_total:
        number = abs(price.number)
        return Amount(-number if units.is_negative() else number, price.currency)
    return Amount(units.number * price.number, price.currency)


def cost_weight(units: Amount, cost: Amount, is_total: bool) -> Amount:
    """Weight of a posting held at cost: units x per-unit cost, or signed total cost"""
    return price_weight(units, cost, is_total)


def posting_weight(posting: Posting) -> Optional[Amount]:
    """
    Weight of a posting whose amounts are all explicit.

    The cost basis is the weight whenever a cost amount is given, regardless
    of price. Returns None for elided postings and for postings whose cost
    must be inferred or booked against existing lots.
    """
    units = posting.amount
    if units is None:
        return None
    if posting.cost is not None:
        if posting.cost.amount is None:
            return None
        return cost_weight(units, posting.cost.amount, posting.cost.is_total)
    if posting.price is not None:
        return price_weight(units, posting.price, posting.price_is_total)
    return units


@dataclass
class BookedPosting:
    """A posting with its final units, weight and lot bookkeeping"""
    posting: Posting
    units: Optional[Amount] = None
    weight: Optional[Amount] = None
    lot: Optional[LotSpec] = None
    reductions: List[Reduction] = field(default_factory=list)
    inferred: bool = False

    @property
    def account(self) -> str:
        return self.posting.account


@dataclass
class BookingResult:
    """Outcome of balancing one transaction"""
    transaction: Transaction
    postings: List[BookedPosting] = field(default_factory=list)
    inventories: Dict[str, Inventory] = field(default_factory=dict)
    residual: Dict[str, Decimal] = field(default_factory=dict)
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TransactionBalancer:
    """
    Balances transactions against the current account state.

    At most one slot per transaction may be inferred: either one posting
    without units, or one augmentation with an empty cost `{}`.
    """

    def __init__(self, registry: AccountRegistry, tolerances: ToleranceConfig):
        self.registry = registry
        self.tolerances = tolerances

    def book(self, transaction: Transaction) -> BookingResult:
        """
        Book a transaction whose accounts have already been checked.

        Args:
            transaction: Transaction to balance

        Returns:
            BookingResult; apply its inventories only if `ok`
        """
        result = BookingResult(transaction)
        postings = [BookedPosting(posting) for posting in transaction.postings]

        elided = [booked for booked in postings if booked.posting.amount is None]
        if len(elided) > 1:
            result.errors.append(AmbiguousResidualAmountError(
                f"{len(elided)} postings have no amount, at most one may be elided",
                directive=transaction))
            return result

        for booked in elided:
            if booked.posting.cost is not None:
                result.errors.append(InvalidCostError(
                    booked.account, "a posting without units cannot carry a cost", transaction))
                return result

        pending_costs: List[BookedPosting] = []
        for booked in postings:
            if booked.posting.amount is None:
                continue
            error = self._weigh(booked, result)
            if error is not None:
                result.errors.append(error)
                return result
            if booked.weight is None:
                pending_costs.append(booked)

        if len(elided) + len(pending_costs) > 1:
            result.errors.append(AmbiguousResidualAmountError(
                "only one missing amount or cost can be inferred per transaction",
                directive=transaction))
            return result
        pending_cost = pending_costs[0] if pending_costs else None

        residual = self._residual(postings)

        if elided:
            error = self._infer_units(elided[0], residual, transaction)
            if error is not None:
                result.errors.append(error)
                return result
        elif pending_cost is not None:
            error = self._infer_cost(pending_cost, residual, transaction)
            if error is not None:
                result.errors.append(error)
                return result

        for currency in sorted(residual):
            if abs(residual[currency]) > self.tolerances.for_currency(currency):
                result.errors.append(TransactionImbalanceError(currency, residual[currency], transaction))

        for booked in postings:
            account = self.registry.get(booked.account)
            if account is not None and not account.allows_currency(booked.units.currency):
                result.errors.append(CurrencyConstraintError(
                    booked.account, booked.units.currency, account.currencies, transaction))

        result.postings = postings
        result.residual = residual
        if result.errors:
            return result

        self._apply_augmentations(postings, result)
        return result

    def _weigh(self, booked: BookedPosting, result: BookingResult) -> Optional[ValidationError]:
        """Fill in units and weight of a posting with explicit units"""
        posting = booked.posting
        transaction = result.transaction
        units = posting.amount
        booked.units = units
        cost = posting.cost

        if cost is None:
            booked.weight = posting_weight(posting)
            return None

        if cost.is_merge:
            return InvalidCostError(posting.account, "merge cost {*} is not supported", transaction)

        if not units.is_negative():
            if cost.amount is None:
                # Augmentation at an inferred cost, resolved after residuals
                return None
            booked.weight = cost_weight(units, cost.amount, cost.is_total)
            if not units.is_zero():
                booked.lot = LotSpec(
                    cost=self._per_unit(units, cost.amount, cost.is_total),
                    cost_currency=cost.amount.currency,
                    date=cost.date or transaction.date,
                    label=cost.label,
                )
            return None

        return self._book_reduction(booked, result)

    def _book_reduction(self, booked: BookedPosting, result: BookingResult) -> Optional[ValidationError]:
        posting = booked.posting
        transaction = result.transaction
        units = posting.amount
        cost = posting.cost
        account = self.registry.get(posting.account)

        spec = LotSpec(
            cost=self._per_unit(units, cost.amount, cost.is_total) if cost.amount is not None else None,
            cost_currency=cost.amount.currency if cost.amount is not None else None,
            date=cost.date,
            label=cost.label,
        )
        method = account.booking

        if method == BookingMethod.NONE and spec.cost is None:
            return InvalidCostError(posting.account, "NONE booking requires an explicit cost", transaction)

        inventory = self._working_inventory(posting.account, result)
        try:
            reductions = inventory.plan_reduction(units.currency, units.number, spec, method)
        except BookingError as e:
            return InventoryReductionError(posting.account, units.currency, str(e), transaction)

        weight = None
        for reduction in reductions:
            part = reduction.weight
            if part is None:
                return InventoryReductionError(
                    posting.account, units.currency, "matched lots carry no cost", transaction)
            weight = part if weight is None else weight + part

        inventory.apply_reduction(units.currency, reductions, spec, method)
        booked.reductions = reductions
        booked.weight = weight
        return None

    def _residual(self, postings: List[BookedPosting]) -> Dict[str, Decimal]:
        residual: Dict[str, Decimal] = {}
        for booked in postings:
            if booked.weight is None:
                continue
            currency = booked.weight.currency
            residual[currency] = residual.get(currency, Decimal('0')) + booked.weight.number
        return residual

    def _single_currency(self, residual: Dict[str, Decimal]) -> Optional[str]:
        """
        The one currency a missing amount can be inferred in. Currencies
        already balanced within tolerance are ignored unless nothing else is left.
        """
        open_currencies = [currency for currency, number in residual.items()
                           if abs(number) > self.tolerances.for_currency(currency)]
        if len(open_currencies) == 1:
            return open_currencies[0]
        if not open_currencies and len(residual) == 1:
            return next(iter(residual))
        return None

    def _infer_units(self, booked: BookedPosting, residual: Dict[str, Decimal],
                     transaction: Transaction) -> Optional[ValidationError]:
        currency = self._single_currency(residual)
        if currency is None:
            if not residual:
                return AmbiguousResidualAmountError("no other posting has an amount", directive=transaction)
            return AmbiguousResidualAmountError(
                f"remaining postings span currencies {', '.join(sorted(residual))}",
                sorted(residual), transaction)

        booked.units = Amount(-residual[currency], currency)
        booked.weight = booked.units
        booked.inferred = True
        residual[currency] = Decimal('0')
        logger.debug("Inferred %s for %s", booked.units, booked.account)
        return None

    def _infer_cost(self, booked: BookedPosting, residual: Dict[str, Decimal],
                    transaction: Transaction) -> Optional[ValidationError]:
        currency = self._single_currency(residual)
        if currency is None:
            return AmbiguousResidualAmountError(
                "cannot infer cost, remaining postings span several currencies",
                sorted(residual), transaction)

        units = booked.units
        total = -residual[currency]
        booked.weight = Amount(total, currency)
        residual[currency] = Decimal('0')
        if not units.is_zero():
            booked.lot = LotSpec(
                cost=total / units.number,
                cost_currency=currency,
                date=booked.posting.cost.date or transaction.date,
                label=booked.posting.cost.label,
            )
        return None

    def _apply_augmentations(self, postings: List[BookedPosting], result: BookingResult) -> None:
        """Add every non-reducing posting to the working inventories"""
        for booked in postings:
            if booked.reductions:
                continue
            if booked.posting.cost is not None and booked.units.is_zero():
                continue
            inventory = self._working_inventory(booked.account, result)
            inventory.add(booked.units.currency, booked.units.number, booked.lot)

    def _working_inventory(self, account_name: str, result: BookingResult) -> Inventory:
        inventory = result.inventories.get(account_name)
        if inventory is None:
            inventory = self.registry.get(account_name).inventory.copy()
            result.inventories[account_name] = inventory
        return inventory

    @staticmethod
    def _per_unit(units: Amount, cost: Amount, is_total: bool) -> Decimal:
        if is_total:
            if units.is_zero():
                return Decimal('0')
            return abs(cost.number) / abs(units.number)
        return cost.number
