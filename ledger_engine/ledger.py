"""
Ledger Processing Engine

Folds a directive sequence into account state in a single left-to-right
pass. Validation errors are collected rather than raised one at a time,
so a single run reports every problem in the ledger. Each call to
process() rebuilds the whole state from scratch.
"""

from decimal import Decimal
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging
import threading

from .accounts import Account, AccountInfo, AccountRegistry, AccountType
from .directives import (
    Directive, DirectiveKind, UNDATED_KINDS, Balance, Close, Commodity, Custom, Document,
    Event, Note, Open, Option, Pad, Plugin, Price, Transaction, sort_directives,
)
from .errors import (
    ProcessingCancelled, StructuralError, ValidationError, ValidationErrors,
    BalanceAssertionError, PadSourceNotOpenError,
)
from .options import LedgerOptions, parse_options
from .pads import PadResolver
from .reporting import BalanceTree, build_balance_tree
from .transactions import BookingResult, TransactionBalancer

logger = logging.getLogger("ledger_engine.ledger")

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Cooperative cancellation flag checked once per directive"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProcessingCancelled("Processing was cancelled")


# Directive kind -> Ledger method handling it
HANDLERS: Dict[DirectiveKind, str] = {
    DirectiveKind.OPEN: "_handle_open",
    DirectiveKind.CLOSE: "_handle_close",
    DirectiveKind.COMMODITY: "_handle_commodity",
    DirectiveKind.BALANCE: "_handle_balance",
    DirectiveKind.PAD: "_handle_pad",
    DirectiveKind.NOTE: "_handle_note",
    DirectiveKind.DOCUMENT: "_handle_document",
    DirectiveKind.PRICE: "_handle_price",
    DirectiveKind.TRANSACTION: "_handle_transaction",
    DirectiveKind.OPTION: "_handle_option",
    DirectiveKind.PLUGIN: "_handle_plugin",
    DirectiveKind.EVENT: "_handle_event",
    DirectiveKind.CUSTOM: "_handle_custom",
    DirectiveKind.PUSHTAG: "_handle_structural",
    DirectiveKind.POPTAG: "_handle_structural",
    DirectiveKind.PUSHMETA: "_handle_structural",
    DirectiveKind.POPMETA: "_handle_structural",
}

assert set(HANDLERS) == set(DirectiveKind), \
    f"unhandled directive kinds: {set(DirectiveKind) - set(HANDLERS)}"


class Ledger:
    """
    Processed ledger state: accounts, inventories, prices and the
    validation errors of the last run.

    The engine is synchronous and not thread-safe while processing.
    Once process() returns, the ledger is only read; see SnapshotStore
    for sharing it between threads.
    """

    def __init__(self, defaults: Optional[LedgerOptions] = None):
        self._defaults = defaults or LedgerOptions()
        self._reset()

    def _reset(self) -> None:
        self._options = self._defaults.copy()
        self._registry = AccountRegistry(self._options.account_names, self._options.booking_method)
        self._balancer = TransactionBalancer(self._registry, self._options.tolerances)
        self._pads = PadResolver()
        self._errors: List[ValidationError] = []
        self._directives: List[Directive] = []
        self._synthetic: List[Transaction] = []
        self._commodities: Dict[str, Commodity] = {}
        self._prices: List[Price] = []
        self._events: List[Event] = []
        self._plugins: List[Plugin] = []
        self._customs: List[Custom] = []

    def process(
        self,
        directives: Iterable[Directive],
        *,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None
    ) -> None:
        """
        Process a directive sequence, replacing any previous state.

        Args:
            directives: Directives in any order; they are stably sorted by date
            cancel_token: Checked before each directive
            progress: Called as progress(processed, total) after each directive

        Raises:
            StructuralError: If the sequence contains malformed items
            ProcessingCancelled: If the token was cancelled mid-run
            ValidationErrors: If any validation error was found
        """
        items = list(directives)
        self._check_structure(items)
        self._reset()

        self._options, option_errors = parse_options(
            [d for d in items if d.kind == DirectiveKind.OPTION], self._defaults)
        self._registry = AccountRegistry(self._options.account_names, self._options.booking_method)
        self._balancer = TransactionBalancer(self._registry, self._options.tolerances)
        self._errors.extend(option_errors)

        ordered = sort_directives(items)
        self._directives = ordered
        total = len(ordered)
        logger.debug("Processing %d directives", total)

        for index, directive in enumerate(ordered):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            getattr(self, HANDLERS[directive.kind])(directive)
            if progress is not None:
                progress(index + 1, total)

        self._errors.extend(self._pads.unresolved())
        self._errors.sort(key=_error_sort_key)

        logger.info(
            "Processed %d directives: %d accounts, %d padding entries, %d errors",
            total, len(self._registry), len(self._synthetic), len(self._errors)
        )
        for error in self._errors:
            logger.debug("Validation error [%s] %s", error.code, error)

        if self._errors:
            raise ValidationErrors(self._errors)

    def _check_structure(self, items: Sequence[Any]) -> None:
        for index, item in enumerate(items):
            if not isinstance(item, Directive):
                raise StructuralError(f"Item {index} is not a directive: {type(item).__name__}")
            if item.kind not in UNDATED_KINDS and not isinstance(item.date, date):
                raise StructuralError(f"Item {index} ({item.label}) has no date")

    def _report(self, errors: Iterable[ValidationError]) -> None:
        self._errors.extend(errors)

    # Handlers

    def _handle_open(self, directive: Open) -> None:
        self._report(self._registry.open(directive))

    def _handle_close(self, directive: Close) -> None:
        self._report(self._registry.close(directive))

    def _handle_commodity(self, directive: Commodity) -> None:
        self._commodities.setdefault(directive.currency, directive)

    def _handle_note(self, directive: Note) -> None:
        error = self._registry.check_access(directive.account, directive.date, directive)
        if error is not None:
            self._errors.append(error)
            return
        self._registry.get(directive.account).notes.append(directive)

    def _handle_document(self, directive: Document) -> None:
        error = self._registry.check_access(directive.account, directive.date, directive)
        if error is not None:
            self._errors.append(error)
            return
        self._registry.get(directive.account).documents.append(directive)

    def _handle_price(self, directive: Price) -> None:
        self._prices.append(directive)

    def _handle_option(self, directive: Option) -> None:
        # Options are read before the fold
        pass

    def _handle_plugin(self, directive: Plugin) -> None:
        self._plugins.append(directive)

    def _handle_event(self, directive: Event) -> None:
        self._events.append(directive)

    def _handle_custom(self, directive: Custom) -> None:
        self._customs.append(directive)

    def _handle_structural(self, directive: Directive) -> None:
        pass

    def _handle_transaction(self, directive: Transaction) -> None:
        errors = []
        seen = set()
        for account in directive.accounts:
            if account in seen:
                continue
            seen.add(account)
            error = self._registry.check_access(account, directive.date, directive)
            if error is not None:
                errors.append(error)
        if errors:
            self._report(errors)
            return

        result = self._balancer.book(directive)
        if not result.ok:
            self._report(result.errors)
            return
        self._install(result)

    def _install(self, result: BookingResult) -> None:
        """Commit a successful booking to the accounts"""
        transaction = result.transaction
        for name, inventory in result.inventories.items():
            self._registry.get(name).inventory = inventory
        for booked in result.postings:
            self._registry.get(booked.account).record_posting(transaction.date, booked.units, transaction)

    def _handle_pad(self, directive: Pad) -> None:
        error = self._registry.check_access(directive.account, directive.date, directive)
        if error is not None:
            self._errors.append(error)
            return

        source = self._registry.get(directive.source_account)
        if source is None or not source.is_open(directive.date):
            self._errors.append(PadSourceNotOpenError(directive.account, directive.source_account, directive))
            return

        self._pads.add(directive)

    def _handle_balance(self, directive: Balance) -> None:
        error = self._registry.check_access(directive.account, directive.date, directive)
        if error is not None:
            self._pads.take(directive.account)
            self._errors.append(error)
            return

        account = self._registry.get(directive.account)
        currency = directive.amount.currency
        padding, error = self._pads.resolve(
            directive, account.inventory.get(currency), self._options.tolerances)
        if error is not None:
            self._errors.append(error)
            return

        if padding is not None:
            result = self._balancer.book(padding)
            if not result.ok:
                self._report(result.errors)
            else:
                self._install(result)
                self._synthetic.append(padding)
                logger.debug("Inserted padding for %s: %s", directive.account, padding.narration)

        expected = directive.amount.number
        actual = account.inventory.get(currency)
        if abs(expected - actual) > self._options.tolerances.for_currency(currency):
            self._errors.append(BalanceAssertionError(directive.account, currency, expected, actual, directive))

    # Queries

    @property
    def errors(self) -> List[ValidationError]:
        """Validation errors of the last run, ordered by directive date"""
        return list(self._errors)

    @property
    def options(self) -> LedgerOptions:
        return self._options

    def accounts(self) -> Dict[str, AccountInfo]:
        """Every opened account by name"""
        return self._registry.infos()

    def get_account(self, name: str) -> Optional[Account]:
        return self._registry.get(name)

    def account_type_from_name(self, name: str) -> Tuple[Optional[AccountType], bool]:
        """
        Map a configured root name (e.g. 'Assets') to its account type.

        Returns:
            Tuple of (account type or None, found)
        """
        account_type = self._options.account_names.type_for_root(name)
        return account_type, account_type is not None

    def balance_tree(
        self,
        types: Iterable[Union[AccountType, str]] = (),
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> BalanceTree:
        """
        Aggregate balances into a tree per account type.

        Raises:
            InvalidDateRangeError: For a one-sided or inverted range
            UnknownAccountTypeError: For an unknown type name
        """
        return build_balance_tree(
            iter(self._registry), self._options.account_names, types, start, end)

    @property
    def synthetic_transactions(self) -> List[Transaction]:
        """Padding transactions inserted during the last run"""
        return list(self._synthetic)

    def materialize(self) -> List[Directive]:
        """Processed directives with padding transactions inserted, date ordered"""
        return sort_directives(list(self._directives) + list(self._synthetic))

    @property
    def commodities(self) -> Dict[str, Commodity]:
        return dict(self._commodities)

    @property
    def prices(self) -> List[Price]:
        return list(self._prices)

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    @property
    def plugins(self) -> List[Plugin]:
        return list(self._plugins)

    @property
    def customs(self) -> List[Custom]:
        return list(self._customs)

    def get_price(self, on: date, base: str, quote: str) -> Optional[Decimal]:
        """
        Rate converting one unit of `base` into `quote` on a date.

        Uses the most recent price on or before the date, either quoted
        directly or inverted. There is no search through intermediate
        currencies.

        Returns:
            The rate, or None if no price is known
        """
        if base == quote:
            return Decimal('1')

        latest: Optional[Price] = None
        for price in self._prices:
            if price.date > on:
                continue
            pair = (price.currency, price.amount.currency)
            if pair not in ((base, quote), (quote, base)):
                continue
            if latest is None or price.date >= latest.date:
                latest = price

        if latest is None:
            return None
        if latest.currency == base:
            return latest.amount.number
        if latest.amount.is_zero():
            return None
        return Decimal('1') / latest.amount.number


def _error_sort_key(error: ValidationError) -> date:
    return error.date if error.date is not None else date.min
