"""
Ledger Errors Module

Two tiers of errors:

- Fatal errors (LedgerError) abort the current operation immediately:
  malformed input sequences, invalid report queries, cancellation.
- Validation errors (ValidationError) are collected during processing
  and returned together once the full pass completes.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .currency import format_decimal
from .directives import Directive, SourcePosition


class LedgerError(Exception):
    """Base class for fatal engine errors"""


class StructuralError(LedgerError):
    """The directive sequence itself is malformed"""


class InvalidDateRangeError(LedgerError, ValueError):
    """A report was requested with an unusable date range"""


class UnknownAccountTypeError(LedgerError, ValueError):
    """A report was requested for an account type that does not exist"""


class ProcessingCancelled(LedgerError):
    """Processing was cancelled through its cancellation token"""


class ValidationError(Exception):
    """
    A single invariant violation found while processing directives.
    Carries the triggering directive so it can be rendered at its position.
    """
    code = "ValidationError"

    def __init__(self, message: str, directive: Optional[Directive] = None,
                 account: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.directive = directive
        self.account = account

    @property
    def date(self) -> Optional[date]:
        if self.directive is None:
            return None
        return self.directive.date

    @property
    def position(self) -> Optional[SourcePosition]:
        if self.directive is None:
            return None
        return self.directive.position

    @property
    def location(self) -> str:
        position = self.position
        if position is not None and position.filename:
            return str(position)
        if self.date is not None:
            return self.date.isoformat()
        return ""

    def details(self) -> Dict[str, Any]:
        """Error-specific fields for serialization"""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        position = self.position
        result = {
            "code": self.code,
            "message": self.message,
            "account": self.account,
            "date": self.date.isoformat() if self.date else None,
            "filename": position.filename if position else None,
            "line": position.line if position else None,
        }
        result.update(self.details())
        return result

    def __str__(self) -> str:
        location = self.location
        if location:
            return f"{location}: {self.message}"
        return self.message


class UnknownAccountError(ValidationError):
    code = "UnknownAccount"

    def __init__(self, account: str, directive: Optional[Directive] = None):
        super().__init__(f"Invalid reference to unknown account '{account}'", directive, account)


class ClosedAccountAccessError(ValidationError):
    code = "ClosedAccountAccess"

    def __init__(self, account: str, closed_on: date, directive: Optional[Directive] = None):
        super().__init__(
            f"Invalid reference to account '{account}' closed on {closed_on.isoformat()}",
            directive, account)
        self.closed_on = closed_on

    def details(self) -> Dict[str, Any]:
        return {"closed_on": self.closed_on.isoformat()}


class DuplicateOpenError(ValidationError):
    code = "DuplicateOpen"

    def __init__(self, account: str, opened_on: date, directive: Optional[Directive] = None):
        super().__init__(
            f"Account {account} is already open (opened on {opened_on.isoformat()})",
            directive, account)
        self.opened_on = opened_on

    def details(self) -> Dict[str, Any]:
        return {"opened_on": self.opened_on.isoformat()}


class DuplicateCloseError(ValidationError):
    code = "DuplicateClose"

    def __init__(self, account: str, closed_on: date, directive: Optional[Directive] = None):
        super().__init__(
            f"Account {account} is already closed (closed on {closed_on.isoformat()})",
            directive, account)
        self.closed_on = closed_on

    def details(self) -> Dict[str, Any]:
        return {"closed_on": self.closed_on.isoformat()}


class CloseWithoutOpenError(ValidationError):
    code = "CloseWithoutOpen"

    def __init__(self, account: str, directive: Optional[Directive] = None):
        super().__init__(f"Cannot close account {account} that was never opened", directive, account)


class InvalidAccountTypeError(ValidationError):
    code = "InvalidAccountType"

    def __init__(self, account: str, root: str, directive: Optional[Directive] = None):
        super().__init__(f"Account '{account}' has invalid account type '{root}'", directive, account)
        self.root = root

    def details(self) -> Dict[str, Any]:
        return {"root": self.root}


class CurrencyConstraintError(ValidationError):
    code = "CurrencyConstraintViolation"

    def __init__(self, account: str, currency: str, allowed: Sequence[str],
                 directive: Optional[Directive] = None):
        super().__init__(
            f"Currency {currency} is not allowed in account {account} "
            f"(allowed: {', '.join(allowed)})",
            directive, account)
        self.currency = currency
        self.allowed = list(allowed)

    def details(self) -> Dict[str, Any]:
        return {"currency": self.currency, "allowed": self.allowed}


class AmbiguousResidualAmountError(ValidationError):
    code = "AmbiguousResidualAmount"

    def __init__(self, reason: str, currencies: Sequence[str] = (),
                 directive: Optional[Directive] = None):
        super().__init__(f"Cannot infer missing amount: {reason}", directive)
        self.currencies = sorted(currencies)

    def details(self) -> Dict[str, Any]:
        return {"currencies": self.currencies}


class TransactionImbalanceError(ValidationError):
    code = "TransactionImbalance"

    def __init__(self, currency: str, residual: Decimal, directive: Optional[Directive] = None):
        super().__init__(
            f"Transaction does not balance: ({format_decimal(residual)} {currency})", directive)
        self.currency = currency
        self.residual = residual

    def details(self) -> Dict[str, Any]:
        return {"currency": self.currency, "residual": format_decimal(self.residual)}


class BalanceAssertionError(ValidationError):
    code = "BalanceAssertionFailed"

    def __init__(self, account: str, currency: str, expected: Decimal, actual: Decimal,
                 directive: Optional[Directive] = None):
        self.currency = currency
        self.expected = expected
        self.actual = actual
        self.diff = expected - actual
        super().__init__(
            f"Balance mismatch for {account}: expected {format_decimal(expected)} {currency}, "
            f"actual {format_decimal(actual)} {currency} "
            f"(difference {format_decimal(self.diff)} {currency})",
            directive, account)

    def details(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "expected": format_decimal(self.expected),
            "actual": format_decimal(self.actual),
            "diff": format_decimal(self.diff),
        }


class AmbiguousPadError(ValidationError):
    code = "AmbiguousPad"

    def __init__(self, account: str, pad_dates: Sequence[date], directive: Optional[Directive] = None):
        dates = ", ".join(d.isoformat() for d in pad_dates)
        super().__init__(
            f"Multiple pad directives ({dates}) are pending for {account}", directive, account)
        self.pad_dates = list(pad_dates)

    def details(self) -> Dict[str, Any]:
        return {"pad_dates": [d.isoformat() for d in self.pad_dates]}


class PadSourceNotOpenError(ValidationError):
    code = "PadSourceNotOpen"

    def __init__(self, account: str, source_account: str, directive: Optional[Directive] = None):
        super().__init__(
            f"Pad source account '{source_account}' for {account} is not open on the pad date",
            directive, account)
        self.source_account = source_account

    def details(self) -> Dict[str, Any]:
        return {"source_account": self.source_account}


class UnresolvedPadError(ValidationError):
    code = "UnresolvedPad"

    def __init__(self, account: str, source_account: str, directive: Optional[Directive] = None):
        super().__init__(
            f"Unused pad entry for {account} (no balance assertion follows)", directive, account)
        self.source_account = source_account

    def details(self) -> Dict[str, Any]:
        return {"source_account": self.source_account}


class InvalidOptionError(ValidationError):
    code = "InvalidOption"

    def __init__(self, name: str, value: str, reason: str, directive: Optional[Directive] = None):
        super().__init__(f"Invalid option {name}={value!r}: {reason}", directive)
        self.name = name
        self.value = value

    def details(self) -> Dict[str, Any]:
        return {"option": self.name, "value": self.value}


class InvalidBookingMethodError(ValidationError):
    code = "InvalidBookingMethod"

    def __init__(self, account: str, method: str, directive: Optional[Directive] = None):
        super().__init__(f"Unknown booking method '{method}' for account {account}", directive, account)
        self.method = method

    def details(self) -> Dict[str, Any]:
        return {"method": self.method}


class InvalidCostError(ValidationError):
    code = "InvalidCost"

    def __init__(self, account: str, reason: str, directive: Optional[Directive] = None):
        super().__init__(f"Invalid cost specification for {account}: {reason}", directive, account)


class InventoryReductionError(ValidationError):
    code = "InventoryReductionFailed"

    def __init__(self, account: str, currency: str, reason: str,
                 directive: Optional[Directive] = None):
        super().__init__(f"Cannot reduce {currency} in {account}: {reason}", directive, account)
        self.currency = currency

    def details(self) -> Dict[str, Any]:
        return {"currency": self.currency}


class ValidationErrors(LedgerError):
    """Aggregate of every validation error found in one processing pass"""

    def __init__(self, errors: Sequence[ValidationError]):
        self.errors: List[ValidationError] = list(errors)
        super().__init__(self._render())

    def _render(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        lines = [str(error) for error in self.errors]
        lines.append(f"{len(self.errors)} validation error(s) found")
        return "\n\n".join(lines)

    def __iter__(self) -> Iterator[ValidationError]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def by_code(self, code: str) -> List[ValidationError]:
        return [error for error in self.errors if error.code == code]
