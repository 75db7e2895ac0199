"""
Test suite for account registry

Tests the UNOPENED -> OPEN -> CLOSED lifecycle, account type derivation
and access rules for directives referencing accounts.
"""

import pytest
from datetime import date

from ledger_engine.accounts import (
    AccountNames, AccountRegistry, AccountState, AccountType, CANONICAL_ORDER,
    account_parents, account_root,
)
from ledger_engine.directives import Open, Close, Note
from ledger_engine.errors import (
    UnknownAccountError, ClosedAccountAccessError, DuplicateOpenError,
    DuplicateCloseError, CloseWithoutOpenError, InvalidAccountTypeError,
    InvalidBookingMethodError,
)
from ledger_engine.inventory import BookingMethod


class TestAccountNames:
    """Test root name mapping"""

    def test_default_roots(self):
        names = AccountNames()
        assert names.roots() == ["Assets", "Liabilities", "Equity", "Income", "Expenses"]
        assert names.type_for_root("Income") == AccountType.INCOME
        assert names.type_for_root("Revenue") is None

    def test_custom_roots(self):
        names = AccountNames(income="Revenue")
        assert names.type_for_root("Revenue") == AccountType.INCOME
        assert names.type_for_root("Income") is None
        assert names.root_for(AccountType.INCOME) == "Revenue"

    def test_canonical_order(self):
        assert [t.value for t in CANONICAL_ORDER] == [
            "Assets", "Liabilities", "Equity", "Income", "Expenses"]

    def test_path_helpers(self):
        assert account_root("Assets:US:Checking") == "Assets"
        assert account_parents("Assets:US:Checking") == ["Assets", "Assets:US"]


class TestAccountRegistry:
    """Test the account lifecycle state machine"""

    def setup_method(self):
        """Set up test fixtures"""
        self.registry = AccountRegistry()

    def test_open_account(self):
        """Test opening an account"""
        errors = self.registry.open(Open(date(2024, 1, 1), "Assets:Checking", ["USD"]))
        assert errors == []

        account = self.registry.get("Assets:Checking")
        assert account.state == AccountState.OPEN
        assert account.account_type == AccountType.ASSETS
        assert account.currencies == ["USD"]
        assert account.booking == BookingMethod.FIFO
        assert self.registry.state_of("Assets:Checking") == AccountState.OPEN
        assert self.registry.state_of("Assets:Other") == AccountState.UNOPENED

    def test_duplicate_open(self):
        """Test that opening an open account fails"""
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        errors = self.registry.open(Open(date(2024, 2, 1), "Assets:Checking"))

        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateOpenError)
        assert errors[0].opened_on == date(2024, 1, 1)

    def test_reopen_closed_account(self):
        """Test that a closed account cannot be opened again"""
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        self.registry.close(Close(date(2024, 2, 1), "Assets:Checking"))
        errors = self.registry.open(Open(date(2024, 3, 1), "Assets:Checking"))

        assert isinstance(errors[0], DuplicateOpenError)

    def test_close_account(self):
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        assert self.registry.close(Close(date(2024, 2, 1), "Assets:Checking")) == []

        account = self.registry.get("Assets:Checking")
        assert account.state == AccountState.CLOSED
        assert account.close_date == date(2024, 2, 1)

    def test_close_without_open(self):
        errors = self.registry.close(Close(date(2024, 2, 1), "Assets:Checking"))
        assert isinstance(errors[0], CloseWithoutOpenError)

    def test_duplicate_close(self):
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        self.registry.close(Close(date(2024, 2, 1), "Assets:Checking"))
        errors = self.registry.close(Close(date(2024, 3, 1), "Assets:Checking"))

        assert isinstance(errors[0], DuplicateCloseError)
        assert errors[0].closed_on == date(2024, 2, 1)

    def test_invalid_account_type(self):
        """Test that unknown roots are rejected and not opened"""
        errors = self.registry.open(Open(date(2024, 1, 1), "Cash:Wallet"))

        assert isinstance(errors[0], InvalidAccountTypeError)
        assert errors[0].root == "Cash"
        assert "Cash:Wallet" not in self.registry

    def test_single_segment_account(self):
        errors = self.registry.open(Open(date(2024, 1, 1), "Assets"))
        assert isinstance(errors[0], InvalidAccountTypeError)

    def test_account_type_is_cached(self):
        assert self.registry.account_type_for("Expenses:Food") == AccountType.EXPENSES
        assert self.registry.account_type_for("Expenses:Food") == AccountType.EXPENSES
        assert self.registry.account_type_for("Bogus:Food") is None

    def test_unknown_booking_method(self):
        """Test that an unknown booking method is reported but the account opens"""
        errors = self.registry.open(Open(date(2024, 1, 1), "Assets:Broker", booking="RANDOM"))

        assert isinstance(errors[0], InvalidBookingMethodError)
        assert self.registry.get("Assets:Broker").booking == BookingMethod.FIFO

    def test_booking_method_from_open(self):
        self.registry.open(Open(date(2024, 1, 1), "Assets:Broker", booking="lifo"))
        assert self.registry.get("Assets:Broker").booking == BookingMethod.LIFO

    def test_default_booking_method(self):
        registry = AccountRegistry(default_booking=BookingMethod.STRICT)
        registry.open(Open(date(2024, 1, 1), "Assets:Broker"))
        assert registry.get("Assets:Broker").booking == BookingMethod.STRICT

    def test_infos_sorted(self):
        self.registry.open(Open(date(2024, 1, 1), "Expenses:Food"))
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))

        infos = self.registry.infos()
        assert list(infos) == ["Assets:Checking", "Expenses:Food"]
        assert infos["Expenses:Food"].to_dict()["type"] == "Expenses"
        assert infos["Expenses:Food"].to_dict()["state"] == "open"


class TestAccountAccess:
    """Test which dates may reference an account"""

    def setup_method(self):
        """Set up test fixtures"""
        self.registry = AccountRegistry()
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        self.registry.close(Close(date(2024, 6, 30), "Assets:Checking"))
        self.note = Note(date(2024, 1, 1), "Assets:Checking", "test")

    def test_access_while_open(self):
        assert self.registry.check_access("Assets:Checking", date(2024, 3, 1), self.note) is None

    def test_access_on_open_date(self):
        assert self.registry.check_access("Assets:Checking", date(2024, 1, 1), self.note) is None

    def test_same_day_as_close_is_allowed(self):
        """Test that the close takes effect at the end of its day"""
        assert self.registry.check_access("Assets:Checking", date(2024, 6, 30), self.note) is None

    def test_access_after_close(self):
        error = self.registry.check_access("Assets:Checking", date(2024, 7, 1), self.note)
        assert isinstance(error, ClosedAccountAccessError)
        assert error.closed_on == date(2024, 6, 30)

    def test_access_unknown_account(self):
        error = self.registry.check_access("Assets:Savings", date(2024, 3, 1), self.note)
        assert isinstance(error, UnknownAccountError)
        assert error.account == "Assets:Savings"

    def test_access_before_open(self):
        error = self.registry.check_access("Assets:Checking", date(2023, 12, 31), self.note)
        assert isinstance(error, UnknownAccountError)

    def test_access_invalid_type(self):
        """Test that invalid roots are reported instead of unknown accounts"""
        error = self.registry.check_access("Bogus:Checking", date(2024, 3, 1), self.note)
        assert isinstance(error, InvalidAccountTypeError)

    def test_is_open(self):
        account = self.registry.get("Assets:Checking")
        assert account.is_open(date(2024, 6, 30))
        assert not account.is_open(date(2024, 7, 1))
        assert not account.is_open(date(2023, 12, 31))
