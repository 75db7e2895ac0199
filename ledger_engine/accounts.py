"""
Account Registry Module

Tracks every account the ledger opens, its type, constraints and
lifecycle (UNOPENED -> OPEN -> CLOSED). The registry answers whether a
directive may reference an account on a given date.
"""

from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from enum import Enum
import re

from .currency import Amount
from .directives import Directive, Open, Close, Note, Document, Transaction
from .errors import (
    ValidationError, UnknownAccountError, ClosedAccountAccessError,
    DuplicateOpenError, DuplicateCloseError, CloseWithoutOpenError,
    InvalidAccountTypeError, InvalidBookingMethodError,
)
from .inventory import BookingMethod, Inventory


ACCOUNT_SEPARATOR = ":"

# Root names must start uppercase; components may also start with a digit
ROOT_NAME_PATTERN = re.compile(r"^[A-Z][A-Za-z0-9-]*$")


class AccountType(Enum):
    """The five account types, valued by their default root names"""
    ASSETS = "Assets"
    LIABILITIES = "Liabilities"
    EQUITY = "Equity"
    INCOME = "Income"
    EXPENSES = "Expenses"


# Fixed order of roots in reports
CANONICAL_ORDER: Tuple[AccountType, ...] = (
    AccountType.ASSETS,
    AccountType.LIABILITIES,
    AccountType.EQUITY,
    AccountType.INCOME,
    AccountType.EXPENSES,
)


class AccountState(Enum):
    """Lifecycle of an account"""
    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class AccountNames:
    """Root segment used for each account type"""
    assets: str = "Assets"
    liabilities: str = "Liabilities"
    equity: str = "Equity"
    income: str = "Income"
    expenses: str = "Expenses"

    def root_for(self, account_type: AccountType) -> str:
        return getattr(self, account_type.name.lower())

    def type_for_root(self, root: str) -> Optional[AccountType]:
        for account_type in CANONICAL_ORDER:
            if self.root_for(account_type) == root:
                return account_type
        return None

    def roots(self) -> List[str]:
        return [self.root_for(account_type) for account_type in CANONICAL_ORDER]


def split_account(name: str) -> List[str]:
    return name.split(ACCOUNT_SEPARATOR)


def account_root(name: str) -> str:
    return name.split(ACCOUNT_SEPARATOR, 1)[0]


def account_parents(name: str) -> List[str]:
    """Ancestors of an account, nearest last: A:B:C -> [A, A:B]"""
    parts = split_account(name)
    return [ACCOUNT_SEPARATOR.join(parts[:i]) for i in range(1, len(parts))]


@dataclass(frozen=True)
class PostingRecord:
    """A posting applied to an account, kept for date-ranged reporting"""
    date: date
    units: Amount
    transaction: Transaction


@dataclass
class Account:
    """
    One opened account and everything the engine accumulated for it.
    Accounts only exist in the registry once an Open directive succeeded.
    """
    name: str
    account_type: AccountType
    open_date: date
    close_date: Optional[date] = None
    currencies: List[str] = field(default_factory=list)
    booking: BookingMethod = BookingMethod.FIFO
    metadata: Dict[str, Any] = field(default_factory=dict)
    inventory: Inventory = field(default_factory=Inventory)
    postings: List[PostingRecord] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    documents: List[Document] = field(default_factory=list)

    @property
    def state(self) -> AccountState:
        if self.close_date is not None:
            return AccountState.CLOSED
        return AccountState.OPEN

    def is_open(self, on: date) -> bool:
        """
        Check if the account accepts directives dated `on`.
        The close takes effect at the end of its day.
        """
        if on < self.open_date:
            return False
        return self.close_date is None or on <= self.close_date

    def allows_currency(self, currency: str) -> bool:
        return not self.currencies or currency in self.currencies

    def record_posting(self, on: date, units: Amount, transaction: Transaction) -> None:
        self.postings.append(PostingRecord(on, units, transaction))

    def to_info(self) -> 'AccountInfo':
        return AccountInfo(
            name=self.name,
            account_type=self.account_type,
            state=self.state,
            open_date=self.open_date,
            close_date=self.close_date,
            currencies=tuple(self.currencies),
            booking=self.booking,
        )


@dataclass(frozen=True)
class AccountInfo:
    """Read-only summary of an account for listings"""
    name: str
    account_type: AccountType
    state: AccountState
    open_date: date
    close_date: Optional[date] = None
    currencies: Tuple[str, ...] = ()
    booking: BookingMethod = BookingMethod.FIFO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.account_type.value,
            "state": self.state.value,
            "open_date": self.open_date.isoformat(),
            "close_date": self.close_date.isoformat() if self.close_date else None,
            "currencies": list(self.currencies),
            "booking": self.booking.value,
        }


class AccountRegistry:
    """
    Open/close state machine over all accounts.

    Every operation returns the validation errors it found instead of
    raising, so the processor can keep folding.
    """

    def __init__(self, names: Optional[AccountNames] = None,
                 default_booking: BookingMethod = BookingMethod.FIFO):
        self.names = names or AccountNames()
        self.default_booking = default_booking
        self._accounts: Dict[str, Account] = {}
        self._type_cache: Dict[str, Optional[AccountType]] = {}

    def account_type_for(self, name: str) -> Optional[AccountType]:
        """
        Derive an account's type from its root segment.
        The result is cached per account name.

        Returns:
            The account type, or None for an unknown root or single-segment name
        """
        if name in self._type_cache:
            return self._type_cache[name]

        account_type = None
        parts = split_account(name)
        if len(parts) >= 2 and all(parts):
            account_type = self.names.type_for_root(parts[0])
        self._type_cache[name] = account_type
        return account_type

    def open(self, directive: Open) -> List[ValidationError]:
        """Transition an account from UNOPENED to OPEN"""
        name = directive.account
        if self.account_type_for(name) is None:
            return [InvalidAccountTypeError(name, account_root(name), directive)]

        existing = self._accounts.get(name)
        if existing is not None:
            return [DuplicateOpenError(name, existing.open_date, directive)]

        errors: List[ValidationError] = []
        booking = self.default_booking
        if directive.booking:
            method = BookingMethod.from_name(directive.booking)
            if method is None:
                errors.append(InvalidBookingMethodError(name, directive.booking, directive))
            else:
                booking = method

        self._accounts[name] = Account(
            name=name,
            account_type=self.account_type_for(name),
            open_date=directive.date,
            currencies=list(directive.currencies),
            booking=booking,
            metadata=dict(directive.metadata),
        )
        return errors

    def close(self, directive: Close) -> List[ValidationError]:
        """Transition an account from OPEN to CLOSED"""
        name = directive.account
        if self.account_type_for(name) is None:
            return [InvalidAccountTypeError(name, account_root(name), directive)]

        account = self._accounts.get(name)
        if account is None:
            return [CloseWithoutOpenError(name, directive)]
        if account.close_date is not None:
            return [DuplicateCloseError(name, account.close_date, directive)]

        account.close_date = directive.date
        return []

    def check_access(self, name: str, on: date, directive: Directive) -> Optional[ValidationError]:
        """
        Check that a directive dated `on` may reference an account.

        Returns:
            None if access is allowed, otherwise the validation error
        """
        if self.account_type_for(name) is None:
            return InvalidAccountTypeError(name, account_root(name), directive)

        account = self._accounts.get(name)
        if account is None or on < account.open_date:
            return UnknownAccountError(name, directive)
        if account.close_date is not None and on > account.close_date:
            return ClosedAccountAccessError(name, account.close_date, directive)
        return None

    def get(self, name: str) -> Optional[Account]:
        return self._accounts.get(name)

    def state_of(self, name: str) -> AccountState:
        account = self._accounts.get(name)
        if account is None:
            return AccountState.UNOPENED
        return account.state

    def infos(self) -> Dict[str, AccountInfo]:
        return {name: account.to_info() for name, account in sorted(self._accounts.items())}

    def __contains__(self, name: str) -> bool:
        return name in self._accounts

    def __iter__(self) -> Iterator[Account]:
        return iter([self._accounts[name] for name in sorted(self._accounts)])

    def __len__(self) -> int:
        return len(self._accounts)
