"""
Pad Resolver Module

Keeps the pad directives waiting for a balance assertion and turns a
resolved pad into a synthetic padding transaction.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import logging

from .currency import Amount, ToleranceConfig, format_decimal
from .directives import Balance, Pad, Posting, Transaction
from .errors import AmbiguousPadError, UnresolvedPadError, ValidationError

logger = logging.getLogger("ledger_engine.pads")

PADDING_FLAG = "P"


def create_padding_transaction(pad: Pad, balance: Balance, difference: Decimal) -> Transaction:
    """
    Build the transaction that moves `difference` from the pad source into
    the padded account. It is dated on the pad, not on the balance.

    Example narration:
        (Padding inserted for Balance of 1000.00 USD for difference 1000.00 USD)
    """
    currency = balance.amount.currency
    narration = (
        f"(Padding inserted for Balance of {format_decimal(balance.amount.number)} {currency} "
        f"for difference {format_decimal(difference)} {currency})"
    )
    return Transaction(
        date=pad.date,
        narration=narration,
        flag=PADDING_FLAG,
        postings=[
            Posting(pad.account, Amount(difference, currency)),
            Posting(pad.source_account, Amount(-difference, currency)),
        ],
        position=pad.position,
        metadata={"synthetic": True},
    )


class PadResolver:
    """Per-account queues of pending pads"""

    def __init__(self):
        self._pending: Dict[str, List[Pad]] = {}

    def add(self, pad: Pad) -> None:
        self._pending.setdefault(pad.account, []).append(pad)

    def take(self, account: str) -> List[Pad]:
        """Remove and return every pad pending for an account"""
        return self._pending.pop(account, [])

    def has_pending(self, account: str) -> bool:
        return bool(self._pending.get(account))

    def resolve(
        self,
        balance: Balance,
        actual: Decimal,
        tolerances: ToleranceConfig
    ) -> Tuple[Optional[Transaction], Optional[ValidationError]]:
        """
        Resolve the pads pending for a balance assertion's account.
        The queue for the account is cleared whatever the outcome.

        Args:
            balance: Balance directive being processed
            actual: Current inventory quantity of the asserted currency
            tolerances: Tolerances for the comparison

        Returns:
            Tuple of (padding transaction or None, AmbiguousPad error or None)
        """
        pads = self.take(balance.account)
        if not pads:
            return None, None

        if len(pads) > 1:
            return None, AmbiguousPadError(balance.account, [pad.date for pad in pads], balance)

        pad = pads[0]
        difference = balance.amount.number - actual
        if abs(difference) <= tolerances.for_currency(balance.amount.currency):
            logger.debug("Pad for %s on %s not needed", pad.account, pad.date)
            return None, None

        return create_padding_transaction(pad, balance, difference), None

    def unresolved(self) -> List[ValidationError]:
        """UnresolvedPad errors for every pad still waiting, in date order"""
        pads = sorted((pad for queue in self._pending.values() for pad in queue),
                      key=lambda pad: pad.date)
        return [UnresolvedPadError(pad.account, pad.source_account, pad) for pad in pads]
