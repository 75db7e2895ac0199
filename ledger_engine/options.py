"""
Ledger Options Module

Reads `option` directives into the settings that drive processing:
balancing tolerances, the default booking method and the account root
names. Bad values are reported and the defaults kept.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .accounts import AccountNames, AccountType, CANONICAL_ORDER, ROOT_NAME_PATTERN
from .currency import ToleranceConfig, decimal_from_string, is_valid_currency
from .directives import Option
from .errors import InvalidOptionError, ValidationError
from .inventory import BookingMethod


ACCOUNT_NAME_OPTIONS: Dict[str, AccountType] = {
    f"name_{account_type.name.lower()}": account_type for account_type in CANONICAL_ORDER
}


@dataclass
class LedgerOptions:
    """Settings collected from option directives"""
    tolerances: ToleranceConfig = field(default_factory=ToleranceConfig)
    booking_method: BookingMethod = BookingMethod.FIFO
    account_names: AccountNames = field(default_factory=AccountNames)
    title: str = ""
    operating_currencies: List[str] = field(default_factory=list)
    raw: Dict[str, List[str]] = field(default_factory=dict)

    def copy(self) -> 'LedgerOptions':
        return LedgerOptions(
            tolerances=self.tolerances.copy(),
            booking_method=self.booking_method,
            account_names=self.account_names,
            title=self.title,
            operating_currencies=list(self.operating_currencies),
            raw={name: list(values) for name, values in self.raw.items()},
        )


def parse_options(
    directives: Iterable[Option],
    defaults: Optional[LedgerOptions] = None
) -> Tuple[LedgerOptions, List[ValidationError]]:
    """
    Fold option directives into LedgerOptions

    Supported options:
        inferred_tolerance_default  "CUR:TOL" or "*:TOL", repeatable
        booking_method              STRICT, FIFO, LIFO, AVERAGE or NONE
        name_assets ... name_expenses
        title, operating_currency

    Args:
        directives: Option directives in ledger order
        defaults: Starting values (from configuration)

    Returns:
        Tuple of (options, validation errors for rejected values)
    """
    options = defaults.copy() if defaults is not None else LedgerOptions()
    errors: List[ValidationError] = []

    for directive in directives:
        name = directive.name
        value = directive.value
        options.raw.setdefault(name, []).append(value)

        if name == "inferred_tolerance_default":
            error = _apply_tolerance(options, directive)
        elif name == "booking_method":
            method = BookingMethod.from_name(value)
            if method is None:
                allowed = ", ".join(m.value for m in BookingMethod)
                error = InvalidOptionError(name, value, f"expected one of {allowed}", directive)
            else:
                options.booking_method = method
                error = None
        elif name in ACCOUNT_NAME_OPTIONS:
            error = _apply_account_name(options, ACCOUNT_NAME_OPTIONS[name], directive)
        elif name == "title":
            options.title = value
            error = None
        elif name == "operating_currency":
            if is_valid_currency(value):
                options.operating_currencies.append(value)
                error = None
            else:
                error = InvalidOptionError(name, value, "not a currency code", directive)
        else:
            # Unknown options are kept verbatim in `raw`
            error = None

        if error is not None:
            errors.append(error)

    return options, errors


def _apply_tolerance(options: LedgerOptions, directive: Option) -> Optional[ValidationError]:
    name, value = directive.name, directive.value
    currency, sep, tolerance_text = value.partition(":")
    currency = currency.strip()
    if not sep:
        return InvalidOptionError(name, value, "expected CURRENCY:TOLERANCE", directive)
    if currency != "*" and not is_valid_currency(currency):
        return InvalidOptionError(name, value, f"invalid currency '{currency}'", directive)

    try:
        tolerance = decimal_from_string(tolerance_text)
        options.tolerances.set(currency, tolerance)
    except ValueError as e:
        return InvalidOptionError(name, value, str(e), directive)
    return None


def _apply_account_name(options: LedgerOptions, account_type: AccountType,
                        directive: Option) -> Optional[ValidationError]:
    name, value = directive.name, directive.value.strip()
    if not ROOT_NAME_PATTERN.match(value):
        return InvalidOptionError(name, value, "root names must start with an uppercase letter", directive)

    current = options.account_names
    for other in CANONICAL_ORDER:
        if other != account_type and current.root_for(other) == value:
            return InvalidOptionError(name, value, f"already used for {other.value}", directive)

    options.account_names = replace(current, **{account_type.name.lower(): value})
    return None
