"""
Pydantic schemas for API requests and responses
"""

import datetime as dt
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .currency import Amount, decimal_from_string, format_decimal
from .directives import (
    Directive, SourcePosition, Cost, Posting, Open, Close, Commodity, Balance, Pad, Note,
    Document, Price, Transaction, Option, Plugin, Event, Custom, PushTag, PopTag, PushMeta, PopMeta,
)
from .reporting import BalanceNode, BalanceTree


class AmountModel(BaseModel):
    number: str = Field(..., description="Decimal number as string")
    currency: str = Field(..., description="Commodity code (USD, EUR, AAPL, etc.)")

    def to_amount(self) -> Amount:
        return Amount(decimal_from_string(self.number), self.currency)

    @classmethod
    def from_amount(cls, amount: Amount) -> 'AmountModel':
        return cls(number=format_decimal(amount.number), currency=amount.currency)


class PositionModel(BaseModel):
    filename: str = ""
    line: int = 0
    column: int = 0

    def to_position(self) -> SourcePosition:
        return SourcePosition(self.filename, self.line, self.column)


class CostModel(BaseModel):
    amount: Optional[AmountModel] = None
    date: Optional[dt.date] = None
    label: str = ""
    is_total: bool = False
    is_merge: bool = False

    def to_cost(self) -> Cost:
        return Cost(
            amount=self.amount.to_amount() if self.amount else None,
            date=self.date,
            label=self.label,
            is_total=self.is_total,
            is_merge=self.is_merge,
        )


class PostingModel(BaseModel):
    account: str
    amount: Optional[AmountModel] = None
    price: Optional[AmountModel] = None
    price_is_total: bool = False
    cost: Optional[CostModel] = None
    flag: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_posting(self) -> Posting:
        return Posting(
            account=self.account,
            amount=self.amount.to_amount() if self.amount else None,
            price=self.price.to_amount() if self.price else None,
            price_is_total=self.price_is_total,
            cost=self.cost.to_cost() if self.cost else None,
            flag=self.flag,
            metadata=dict(self.metadata),
        )


class DirectiveModel(BaseModel):
    """Fields shared by every directive"""
    position: Optional[PositionModel] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def _common(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_position() if self.position else SourcePosition(),
            "metadata": dict(self.metadata),
        }


class OpenModel(DirectiveModel):
    type: Literal["open"] = "open"
    date: dt.date
    account: str
    currencies: List[str] = Field(default_factory=list)
    booking: Optional[str] = None

    def to_directive(self) -> Directive:
        return Open(date=self.date, account=self.account, currencies=list(self.currencies),
                    booking=self.booking, **self._common())


class CloseModel(DirectiveModel):
    type: Literal["close"] = "close"
    date: dt.date
    account: str

    def to_directive(self) -> Directive:
        return Close(date=self.date, account=self.account, **self._common())


class CommodityModel(DirectiveModel):
    type: Literal["commodity"] = "commodity"
    date: dt.date
    currency: str

    def to_directive(self) -> Directive:
        return Commodity(date=self.date, currency=self.currency, **self._common())


class BalanceModel(DirectiveModel):
    type: Literal["balance"] = "balance"
    date: dt.date
    account: str
    amount: AmountModel

    def to_directive(self) -> Directive:
        return Balance(date=self.date, account=self.account, amount=self.amount.to_amount(),
                       **self._common())


class PadModel(DirectiveModel):
    type: Literal["pad"] = "pad"
    date: dt.date
    account: str
    source_account: str

    def to_directive(self) -> Directive:
        return Pad(date=self.date, account=self.account, source_account=self.source_account,
                   **self._common())


class NoteModel(DirectiveModel):
    type: Literal["note"] = "note"
    date: dt.date
    account: str
    comment: str

    def to_directive(self) -> Directive:
        return Note(date=self.date, account=self.account, comment=self.comment, **self._common())


class DocumentModel(DirectiveModel):
    type: Literal["document"] = "document"
    date: dt.date
    account: str
    path: str

    def to_directive(self) -> Directive:
        return Document(date=self.date, account=self.account, path=self.path, **self._common())


class PriceModel(DirectiveModel):
    type: Literal["price"] = "price"
    date: dt.date
    currency: str
    amount: AmountModel

    def to_directive(self) -> Directive:
        return Price(date=self.date, currency=self.currency, amount=self.amount.to_amount(),
                     **self._common())


class TransactionModel(DirectiveModel):
    type: Literal["transaction"] = "transaction"
    date: dt.date
    flag: str = "*"
    payee: Optional[str] = None
    narration: str = ""
    tags: List[str] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)
    postings: List[PostingModel] = Field(default_factory=list)

    def to_directive(self) -> Directive:
        return Transaction(
            date=self.date,
            narration=self.narration,
            postings=[posting.to_posting() for posting in self.postings],
            flag=self.flag,
            payee=self.payee,
            tags=list(self.tags),
            links=list(self.links),
            **self._common()
        )


class OptionModel(DirectiveModel):
    type: Literal["option"] = "option"
    name: str
    value: str

    def to_directive(self) -> Directive:
        return Option(name=self.name, value=self.value, **self._common())


class PluginModel(DirectiveModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["plugin"] = "plugin"
    module: str
    plugin_config: Optional[str] = Field(None, alias="config")

    def to_directive(self) -> Directive:
        return Plugin(module=self.module, config=self.plugin_config, **self._common())


class EventModel(DirectiveModel):
    type: Literal["event"] = "event"
    date: dt.date
    name: str
    value: str

    def to_directive(self) -> Directive:
        return Event(date=self.date, name=self.name, value=self.value, **self._common())


class CustomModel(DirectiveModel):
    type: Literal["custom"] = "custom"
    date: dt.date
    custom_type: str
    values: List[Any] = Field(default_factory=list)

    def to_directive(self) -> Directive:
        return Custom(date=self.date, custom_type=self.custom_type, values=list(self.values),
                      **self._common())


class PushTagModel(DirectiveModel):
    type: Literal["pushtag"] = "pushtag"
    tag: str

    def to_directive(self) -> Directive:
        return PushTag(tag=self.tag, **self._common())


class PopTagModel(DirectiveModel):
    type: Literal["poptag"] = "poptag"
    tag: str

    def to_directive(self) -> Directive:
        return PopTag(tag=self.tag, **self._common())


class PushMetaModel(DirectiveModel):
    type: Literal["pushmeta"] = "pushmeta"
    key: str
    value: Any = None

    def to_directive(self) -> Directive:
        return PushMeta(key=self.key, value=self.value, **self._common())


class PopMetaModel(DirectiveModel):
    type: Literal["popmeta"] = "popmeta"
    key: str

    def to_directive(self) -> Directive:
        return PopMeta(key=self.key, **self._common())


AnyDirectiveModel = Annotated[
    Union[
        OpenModel, CloseModel, CommodityModel, BalanceModel, PadModel, NoteModel,
        DocumentModel, PriceModel, TransactionModel, OptionModel, PluginModel, EventModel,
        CustomModel, PushTagModel, PopTagModel, PushMetaModel, PopMetaModel,
    ],
    Field(discriminator="type"),
]


class DirectiveDocument(BaseModel):
    """A complete ledger as a JSON document"""
    directives: List[AnyDirectiveModel] = Field(default_factory=list)

    def to_directives(self) -> List[Directive]:
        return [model.to_directive() for model in self.directives]


# Response schemas
class BalanceNodeModel(BaseModel):
    name: str
    account: str
    depth: int
    balance: Dict[str, str]
    children: List['BalanceNodeModel'] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: BalanceNode) -> 'BalanceNodeModel':
        return cls(
            name=node.name,
            account=node.account,
            depth=node.depth,
            balance=node.balance.to_dict(),
            children=[cls.from_node(child) for child in node.children],
        )


class BalanceTreeResponse(BaseModel):
    roots: List[BalanceNodeModel]
    currencies: List[str]
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_tree(cls, tree: BalanceTree) -> 'BalanceTreeResponse':
        return cls(
            roots=[BalanceNodeModel.from_node(node) for node in tree.roots],
            currencies=list(tree.currencies),
            start_date=tree.start_date,
            end_date=tree.end_date,
        )


class AccountResponse(BaseModel):
    name: str
    type: str
    state: str
    open_date: str
    close_date: Optional[str] = None
    currencies: List[str] = Field(default_factory=list)
    booking: str


class RebuildResponse(BaseModel):
    version: int
    directives: int
    accounts: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)
