from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class RecordKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    ASSET = "asset"
    DEBT = "debt"


class ConversationState(str, Enum):
    NEW = "new"
    AWAITING_DISCLAIMER = "awaiting_disclaimer"
    AWAITING_INITIAL_SETUP = "awaiting_initial_setup"
    ACTIVE = "active"


class FinancialRecord(BaseModel):
    """A (category, amount) pair pulled out of a chat message."""

    model_config = ConfigDict(frozen=True)

    category: str
    amount: int = Field(ge=0)


class Record(BaseModel):
    id: int | None = None
    user_id: int
    category: str
    amount: int = Field(ge=0)
    kind: RecordKind
    # finer grouping inside a kind, e.g. 銀行存款 or 應付信用卡款
    subcategory: str | None = None
    recorded_at: date = Field(default_factory=date.today)
    description: str | None = None


class UserState(BaseModel):
    id: int | None = None
    external_id: str
    display_name: str | None = None
    channel: Literal["line", "telegram"] = "line"
    state: ConversationState = ConversationState.NEW
    setup_completed: bool = False
    disclaimer_accepted: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Summary(BaseModel):
    total_income: int = 0
    total_expense: int = 0
    unknown_expense: int = 0
    total_assets: int = 0
    total_debts: int = 0
    net_asset: int = 0
    expense_by_category: dict[str, int] = {}
    subcategory_totals: dict[str, int] = {}


ReportPeriod = Literal["monthly", "quarterly", "halfyearly", "yearly", "all"]


class Report(BaseModel):
    period: ReportPeriod
    since: date | None = None
    summary: Summary
    incomes: list[Record] = []
    expenses: list[Record] = []
    assets: list[Record] = []
    debts: list[Record] = []


# Outbound chat payloads


class Action(BaseModel):
    label: str
    data: str | None = None
    uri: str | None = None


class TemplateColumn(BaseModel):
    title: str | None = None
    text: str
    actions: list[Action] = []


class TextReply(BaseModel):
    type: Literal["text"] = "text"
    text: str


class TemplateReply(BaseModel):
    type: Literal["template"] = "template"
    alt_text: str
    layout: Literal["buttons", "confirm", "carousel"] = "buttons"
    columns: list[TemplateColumn]


class FlexReply(BaseModel):
    type: Literal["flex"] = "flex"
    alt_text: str
    contents: dict


Reply = Annotated[TextReply | TemplateReply | FlexReply, Field(discriminator="type")]


# Inbound chat events, already normalised away from the transport's JSON


class FollowEvent(BaseModel):
    type: Literal["follow"] = "follow"
    user_id: str
    reply_token: str | None = None
    display_name: str | None = None


class MessageEvent(BaseModel):
    type: Literal["message"] = "message"
    user_id: str
    text: str
    reply_token: str | None = None
    display_name: str | None = None


class PostbackEvent(BaseModel):
    type: Literal["postback"] = "postback"
    user_id: str
    data: str
    reply_token: str | None = None
    display_name: str | None = None


InboundEvent = Annotated[
    FollowEvent | MessageEvent | PostbackEvent, Field(discriminator="type")
]


# Dashboard API


class CreateRecordRequest(BaseModel):
    category: str = Field(min_length=1)
    amount: int = Field(ge=0)
    kind: RecordKind
    subcategory: str | None = None
    recorded_at: date | None = None
    description: str | None = None


class UpdateRecordRequest(BaseModel):
    category: str | None = Field(default=None, min_length=1)
    amount: int | None = Field(default=None, ge=0)
    kind: RecordKind | None = None
    subcategory: str | None = None
    recorded_at: date | None = None
    description: str | None = None
