"""
Balance Tree Reporting Module

Hierarchical, date-ranged balance views over processed accounts:

- no dates: current state (trial balance)
- start == end: everything up to and including that day (balance sheet)
- start < end: change within the period, both ends inclusive (income statement)

Trees are built fresh on every query from the account state.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from .accounts import (
    Account, AccountNames, AccountType, CANONICAL_ORDER, ACCOUNT_SEPARATOR, split_account,
)
from .currency import format_decimal
from .errors import InvalidDateRangeError, UnknownAccountTypeError


class Balance:
    """Currency to Decimal map, always iterated in currency order"""

    def __init__(self, amounts: Optional[Dict[str, Decimal]] = None):
        self._amounts: Dict[str, Decimal] = {}
        for currency, number in (amounts or {}).items():
            self.add(currency, number)

    def add(self, currency: str, number: Decimal) -> None:
        self._amounts[currency] = self._amounts.get(currency, Decimal('0')) + number

    def get(self, currency: str) -> Decimal:
        return self._amounts.get(currency, Decimal('0'))

    def merge(self, other: 'Balance') -> None:
        for currency, number in other.items():
            self.add(currency, number)

    def currencies(self) -> List[str]:
        return sorted(self._amounts)

    def items(self) -> List[tuple]:
        return [(currency, self._amounts[currency]) for currency in self.currencies()]

    def is_zero(self) -> bool:
        return all(number == 0 for number in self._amounts.values())

    def copy(self) -> 'Balance':
        return Balance(dict(self._amounts))

    def to_dict(self) -> Dict[str, str]:
        """Lossless JSON form: decimals as strings"""
        return {currency: format_decimal(number) for currency, number in self.items()}

    def __getitem__(self, currency: str) -> Decimal:
        return self.get(currency)

    def __contains__(self, currency: str) -> bool:
        return currency in self._amounts

    def __len__(self) -> int:
        return len(self._amounts)

    def __eq__(self, other) -> bool:
        if isinstance(other, Balance):
            return self.items() == other.items()
        if isinstance(other, dict):
            return self.items() == Balance(other).items()
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(f"{format_decimal(number)} {currency}" for currency, number in self.items())
        return f"Balance({inner})"


@dataclass
class BalanceNode:
    """One node of a balance tree; roots are virtual per account type"""
    name: str
    account: str
    depth: int
    balance: Balance = field(default_factory=Balance)
    children: List['BalanceNode'] = field(default_factory=list)

    def find(self, account: str) -> Optional['BalanceNode']:
        """Find a descendant (or self) by full account path"""
        if self.account == account:
            return self
        for child in self.children:
            found = child.find(account)
            if found is not None:
                return found
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "account": self.account,
            "depth": self.depth,
            "balance": self.balance.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class BalanceTree:
    """Result of a balance tree query"""
    roots: List[BalanceNode] = field(default_factory=list)
    currencies: List[str] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def root(self, name: str) -> Optional[BalanceNode]:
        for node in self.roots:
            if node.name == name:
                return node
        return None

    def find(self, account: str) -> Optional[BalanceNode]:
        for node in self.roots:
            found = node.find(account)
            if found is not None:
                return found
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roots": [node.to_dict() for node in self.roots],
            "currencies": list(self.currencies),
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


def resolve_account_types(
    types: Iterable[Union[AccountType, str]],
    names: AccountNames
) -> List[AccountType]:
    """
    Map requested types to AccountType members in canonical order.

    Raises:
        UnknownAccountTypeError: If a name is not a configured root name
    """
    requested = set()
    for item in types:
        if isinstance(item, AccountType):
            requested.add(item)
            continue
        account_type = names.type_for_root(str(item).strip())
        if account_type is None:
            raise UnknownAccountTypeError(f"Unknown account type: {item}")
        requested.add(account_type)

    if not requested:
        return list(CANONICAL_ORDER)
    return [account_type for account_type in CANONICAL_ORDER if account_type in requested]


def account_balance(account: Account, start: Optional[date], end: Optional[date]) -> Balance:
    """Balance of one account for the query mode selected by the dates"""
    if start is None and end is None:
        return Balance(account.inventory.balances())

    balance = Balance()
    for record in account.postings:
        if record.date > end:
            continue
        if start < end and record.date < start:
            continue
        balance.add(record.units.currency, record.units.number)
    return balance


def build_balance_tree(
    accounts: Iterable[Account],
    names: AccountNames,
    types: Iterable[Union[AccountType, str]] = (),
    start: Optional[date] = None,
    end: Optional[date] = None
) -> BalanceTree:
    """
    Build a balance tree over processed accounts.

    Args:
        accounts: Opened accounts
        names: Configured root names
        types: Account types to include (empty for all five)
        start: Start of the range, or None
        end: End of the range, or None

    Returns:
        BalanceTree with one root per requested type that has accounts

    Raises:
        InvalidDateRangeError: If only one date is given or start > end
        UnknownAccountTypeError: If a requested type is unknown
    """
    if (start is None) != (end is None):
        raise InvalidDateRangeError("Both start and end dates are required for a date range")
    if start is not None and start > end:
        raise InvalidDateRangeError(
            f"Start date {start.isoformat()} is after end date {end.isoformat()}")

    requested = resolve_account_types(types, names)

    by_type: Dict[AccountType, List[Account]] = {}
    for account in accounts:
        by_type.setdefault(account.account_type, []).append(account)

    tree = BalanceTree(
        start_date=start.isoformat() if start else None,
        end_date=end.isoformat() if end else None,
    )
    currencies = set()
    for account_type in requested:
        members = by_type.get(account_type)
        if not members:
            continue
        balances = {account.name: account_balance(account, start, end) for account in members}
        for balance in balances.values():
            currencies.update(balance.currencies())
        tree.roots.append(_build_subtree(names.root_for(account_type), balances))

    tree.currencies = sorted(currencies)
    return tree


def _build_subtree(root_name: str, balances: Dict[str, Balance]) -> BalanceNode:
    root = BalanceNode(name=root_name, account="", depth=0)
    nodes: Dict[str, BalanceNode] = {}

    for account_name in sorted(balances):
        parts = split_account(account_name)
        parent = root
        for i in range(1, len(parts)):
            path = ACCOUNT_SEPARATOR.join(parts[:i + 1])
            node = nodes.get(path)
            if node is None:
                node = BalanceNode(name=parts[i], account=path, depth=i)
                nodes[path] = node
                parent.children.append(node)
            parent = node
        parent.balance.merge(balances[account_name])

    _sort_and_aggregate(root)
    return root


def _sort_and_aggregate(node: BalanceNode) -> None:
    """Order children by segment and roll descendant balances up"""
    node.children.sort(key=lambda child: child.name)
    for child in node.children:
        _sort_and_aggregate(child)
        node.balance.merge(child.balance)
