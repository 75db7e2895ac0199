"""
Directive Model Module

The closed set of dated ledger statements consumed by the engine. A
parser or loader produces these; the engine only reads them.
"""

from datetime import date
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Union
from enum import Enum

from .currency import Amount


class DirectiveKind(Enum):
    """Every kind of directive the engine understands"""
    OPEN = "open"
    CLOSE = "close"
    COMMODITY = "commodity"
    BALANCE = "balance"
    PAD = "pad"
    NOTE = "note"
    DOCUMENT = "document"
    PRICE = "price"
    TRANSACTION = "transaction"
    OPTION = "option"
    PLUGIN = "plugin"
    EVENT = "event"
    CUSTOM = "custom"
    PUSHTAG = "pushtag"
    POPTAG = "poptag"
    PUSHMETA = "pushmeta"
    POPMETA = "popmeta"


# Directives that only affect parsing of subsequent entries
STRUCTURAL_KINDS = frozenset({
    DirectiveKind.PUSHTAG, DirectiveKind.POPTAG,
    DirectiveKind.PUSHMETA, DirectiveKind.POPMETA,
})

# Directives that legitimately carry no date
UNDATED_KINDS = STRUCTURAL_KINDS | {DirectiveKind.OPTION, DirectiveKind.PLUGIN}


@dataclass(frozen=True)
class SourcePosition:
    """Location of a directive in its source file"""
    filename: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if not self.filename:
            return f"line {self.line}" if self.line else ""
        return f"{self.filename}:{self.line}"


class Directive:
    """Base class for all directives; subclasses are dataclasses"""
    kind: ClassVar[DirectiveKind]
    date: Optional[date]
    position: SourcePosition
    metadata: Dict[str, Any]

    @property
    def label(self) -> str:
        return self.kind.value


@dataclass
class Cost:
    """
    Cost basis of a posting.

    `{}` is an empty cost (lot chosen by booking), `{*}` a merge cost.
    `is_total` marks `{{...}}` where the amount is the total, not per unit.
    """
    amount: Optional[Amount] = None
    date: Optional[date] = None
    label: str = ""
    is_total: bool = False
    is_merge: bool = False

    def is_empty(self) -> bool:
        return not self.is_merge and self.amount is None and self.date is None and not self.label


@dataclass
class Posting:
    """One account line of a transaction"""
    account: str
    amount: Optional[Amount] = None
    price: Optional[Amount] = None
    price_is_total: bool = False
    cost: Optional[Cost] = None
    flag: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Open(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.OPEN
    date: date
    account: str
    currencies: List[str] = field(default_factory=list)
    booking: Optional[str] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Close(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.CLOSE
    date: date
    account: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Commodity(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.COMMODITY
    date: date
    currency: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Balance(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.BALANCE
    date: date
    account: str
    amount: Amount
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Pad(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.PAD
    date: date
    account: str
    source_account: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Note(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.NOTE
    date: date
    account: str
    comment: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Document(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.DOCUMENT
    date: date
    account: str
    path: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Price(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.PRICE
    date: date
    currency: str
    amount: Amount
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Transaction(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.TRANSACTION
    date: date
    narration: str = ""
    postings: List[Posting] = field(default_factory=list)
    flag: str = "*"
    payee: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def accounts(self) -> List[str]:
        return [posting.account for posting in self.postings]


@dataclass
class Option(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.OPTION
    name: str
    value: str
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Plugin(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.PLUGIN
    module: str
    config: Optional[str] = None
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Event(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.EVENT
    date: date
    name: str
    value: str
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Custom(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.CUSTOM
    date: date
    custom_type: str
    values: List[Any] = field(default_factory=list)
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PushTag(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.PUSHTAG
    tag: str
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PopTag(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.POPTAG
    tag: str
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PushMeta(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.PUSHMETA
    key: str
    value: Any = None
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PopMeta(Directive):
    kind: ClassVar[DirectiveKind] = DirectiveKind.POPMETA
    key: str
    date: Optional[date] = None
    position: SourcePosition = field(default_factory=SourcePosition)
    metadata: Dict[str, Any] = field(default_factory=dict)


AnyDirective = Union[
    Open, Close, Commodity, Balance, Pad, Note, Document, Price, Transaction,
    Option, Plugin, Event, Custom, PushTag, PopTag, PushMeta, PopMeta,
]

DIRECTIVE_TYPES: Dict[DirectiveKind, type] = {
    cls.kind: cls for cls in (
        Open, Close, Commodity, Balance, Pad, Note, Document, Price, Transaction,
        Option, Plugin, Event, Custom, PushTag, PopTag, PushMeta, PopMeta,
    )
}

assert set(DIRECTIVE_TYPES) == set(DirectiveKind), "every DirectiveKind needs a directive class"


def sort_key(directive: Directive) -> date:
    """Undated directives (options, plugins, push/pop) sort first"""
    return directive.date if directive.date is not None else date.min


def sort_directives(directives: Sequence[Directive]) -> List[Directive]:
    """
    Sort directives by date. The sort is stable: directives on the same
    date keep their input order.
    """
    return sorted(directives, key=sort_key)
