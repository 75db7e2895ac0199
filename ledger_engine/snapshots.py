"""
Ledger Snapshot Store Module

Publishes processed ledgers as immutable snapshots. A reload processes a
brand-new Ledger and swaps the published pointer under a single writer
lock, so readers always see one complete ledger.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple
import logging
import threading

from .directives import Directive
from .errors import ValidationError, ValidationErrors
from .ledger import CancellationToken, Ledger, ProgressCallback
from .logging_config import log_action
from .options import LedgerOptions

logger = logging.getLogger("ledger_engine.snapshots")


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    One published ledger. The ledger must only be queried once it is
    part of a snapshot.
    """
    ledger: Ledger
    version: int
    directive_count: int = 0
    errors: Tuple[ValidationError, ...] = ()
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_valid(self) -> bool:
        return not self.errors


class SnapshotStore:
    """Holds the current snapshot; any number of readers, one writer at a time"""

    def __init__(self, defaults: Optional[LedgerOptions] = None, read_only: bool = False):
        self.defaults = defaults or LedgerOptions()
        self.read_only = read_only
        self._lock = threading.Lock()
        self._snapshot = LedgerSnapshot(ledger=Ledger(self.defaults), version=0)

    def current(self) -> LedgerSnapshot:
        """The snapshot published last"""
        return self._snapshot

    def rebuild(
        self,
        directives: Iterable[Directive],
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None
    ) -> LedgerSnapshot:
        """
        Process directives into a new ledger and publish it.

        Validation errors do not prevent publishing; they travel with the
        snapshot. Structural errors and cancellation leave the current
        snapshot in place.

        Raises:
            StructuralError: If the directives are malformed
            ProcessingCancelled: If the token was cancelled
        """
        items = list(directives)
        ledger = Ledger(self.defaults)
        errors: Tuple[ValidationError, ...] = ()
        try:
            ledger.process(items, cancel_token=cancel_token, progress=progress)
        except ValidationErrors as e:
            errors = tuple(e.errors)

        with self._lock:
            snapshot = LedgerSnapshot(
                ledger=ledger,
                version=self._snapshot.version + 1,
                directive_count=len(items),
                errors=errors,
            )
            self._snapshot = snapshot

        log_action(
            logger, "info", "Published ledger snapshot",
            action="rebuild", resource=f"snapshot:{snapshot.version}",
            extra={"directives": len(items), "errors": len(errors),
                   "accounts": len(ledger.accounts())}
        )
        return snapshot
