"""
Schemas for low-stock notifications.

Outbound payloads are a tagged union on `channel` so each transport receives
exactly the shape it knows how to deliver. Explicit (user-triggered) send
requests are a tagged union on `kind`.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from app.core.enums import AlertChannel, DispatchOutcome
from app.schemas.base import BaseSchema


class LowStockItem(BaseSchema):
    id: int
    name: str
    sku: str
    stock: int
    threshold: int


class GlobalReport(BaseSchema):
    """Low-stock items split by severity, input order kept inside each bucket."""
    critical: List[LowStockItem] = []
    low_stock: List[LowStockItem] = []

    @property
    def total(self) -> int:
        return len(self.critical) + len(self.low_stock)


# ----------------------------------------------------------------------
# Discord webhook payload
# ----------------------------------------------------------------------
class DiscordEmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False


class DiscordEmbedFooter(BaseModel):
    text: str


class DiscordEmbedThumbnail(BaseModel):
    url: str


class DiscordEmbed(BaseModel):
    title: str
    description: str
    color: int
    fields: List[DiscordEmbedField] = []
    timestamp: str
    footer: DiscordEmbedFooter
    thumbnail: Optional[DiscordEmbedThumbnail] = None


class DiscordWebhookPayload(BaseModel):
    channel: Literal["discord"] = "discord"
    embeds: List[DiscordEmbed]
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    def to_webhook_json(self) -> Dict[str, Any]:
        """Body accepted by the Discord webhook endpoint"""
        return self.model_dump(exclude={"channel"}, exclude_none=True)


# ----------------------------------------------------------------------
# Email report payload
# ----------------------------------------------------------------------
class EmailReportData(BaseSchema):
    items: List[LowStockItem]
    total_items: int = Field(alias="totalItems")
    critical_items: int = Field(alias="criticalItems")
    low_stock_items: int = Field(alias="lowStockItems")
    report_date: str = Field(alias="reportDate")


class EmailReportPayload(BaseModel):
    channel: Literal["email"] = "email"
    recipients: List[str]
    subject: str
    data: EmailReportData


AlertPayload = Annotated[
    Union[DiscordWebhookPayload, EmailReportPayload],
    Field(discriminator="channel"),
]


# ----------------------------------------------------------------------
# Explicit send requests
# ----------------------------------------------------------------------
class StockAlertRequest(BaseSchema):
    """Manual "notify now" for a single product."""
    kind: Literal["stock_alert"] = "stock_alert"
    channel: Literal["discord"] = "discord"
    product_id: int = Field(alias="productId", gt=0)
    product_name: str = Field(alias="productName", min_length=1)
    sku: str = Field(min_length=1)
    current_stock: int = Field(alias="currentStock", ge=0)
    threshold: int = Field(gt=0)
    dedupe_key: str = Field(alias="dedupeKey", min_length=1)


class GlobalReportRequest(BaseSchema):
    kind: Literal["global_report"] = "global_report"
    channel: Literal["discord"] = "discord"
    items: List[LowStockItem] = []
    dedupe_key: str = Field(alias="dedupeKey", min_length=1)


class EmailReportRequest(BaseSchema):
    kind: Literal["email_report"] = "email_report"
    channel: Literal["email"] = "email"
    recipients: Union[str, List[str]] = Field(alias="email")
    subject: str = Field(min_length=1)
    items: List[LowStockItem] = []
    # Falls back to a time-based key when the caller has no stable one
    dedupe_key: Optional[str] = Field(default=None, alias="dedupeKey")


ExplicitAlertRequest = Annotated[
    Union[StockAlertRequest, GlobalReportRequest, EmailReportRequest],
    Field(discriminator="kind"),
]


class EmailTestRequest(BaseSchema):
    recipients: Union[str, List[str]] = Field(alias="email")


class DispatchResult(BaseSchema):
    outcome: DispatchOutcome
    channel: Optional[AlertChannel] = None
    dedupe_key: Optional[str] = None
    recorded: bool = False
    forwarded: bool = False


class AlertLogRead(BaseSchema):
    id: int
    product_id: int
    stock_before: Optional[int] = None
    stock_after: int
    threshold: int
    channel: AlertChannel
    dedupe_key: str
    created_at: datetime
