import logging
from datetime import datetime
from typing import Iterable, Optional

import httpx

from app.core.enums import AlertChannel, AlertSeverity
from app.integrations.base import ChannelTransport
from app.schemas.notifications import (
    DiscordEmbed,
    DiscordEmbedField,
    DiscordEmbedFooter,
    DiscordEmbedThumbnail,
    DiscordWebhookPayload,
    LowStockItem,
)
from app.services.reports import build_global_report

logger = logging.getLogger(__name__)

CRITICAL_COLOR = 0xFF0000  # red
LOW_COLOR = 0xFFA500       # orange

FOOTER_TEXT = "Inventory Management System"
ALERT_ICON_URL = "https://cdn.discordapp.com/emojis/📦.png"
REPORT_ICON_URL = "https://cdn.discordapp.com/emojis/📊.png"

# Items listed per severity bucket in a report before truncating
MAX_REPORT_ITEMS = 10

DEFAULT_ALERT_TIMEOUT = 10.0
DEFAULT_REPORT_TIMEOUT = 15.0


def build_stock_alert_payload(
    *,
    product_name: str,
    sku: str,
    current_stock: int,
    threshold: int,
    timestamp: datetime,
    username: Optional[str] = "Inventory Bot",
) -> DiscordWebhookPayload:
    """Single-product embed; critical wording and red when stock is zero."""
    severity = AlertSeverity.for_stock(current_stock)
    is_critical = severity == AlertSeverity.CRITICAL

    if is_critical:
        status_text = "🔴 **OUT OF STOCK** - Immediate action required!"
    else:
        status_text = f"🟡 **LOW STOCK** - {threshold - current_stock} units below threshold"

    embed = DiscordEmbed(
        title="🚨 CRITICAL STOCK ALERT" if is_critical else "⚠️ LOW STOCK ALERT",
        description=(
            f"**{product_name}** is completely out of stock!"
            if is_critical
            else f"**{product_name}** is running low on stock."
        ),
        color=CRITICAL_COLOR if is_critical else LOW_COLOR,
        fields=[
            DiscordEmbedField(
                name="📦 Product Details",
                value=f"**Name:** {product_name}\n**SKU:** `{sku}`",
                inline=True,
            ),
            DiscordEmbedField(
                name="📊 Stock Status",
                value=f"**Current:** {current_stock} units\n**Threshold:** {threshold} units",
                inline=True,
            ),
            DiscordEmbedField(name="📈 Status", value=status_text, inline=False),
        ],
        timestamp=timestamp.isoformat(),
        footer=DiscordEmbedFooter(text=FOOTER_TEXT),
        thumbnail=DiscordEmbedThumbnail(url=ALERT_ICON_URL),
    )
    return DiscordWebhookPayload(embeds=[embed], username=username, avatar_url=ALERT_ICON_URL)


def _format_bucket(items: list) -> str:
    lines = [
        f"• **{item.name}** (`{item.sku}`) - **{item.stock}** units (threshold: {item.threshold})"
        for item in items[:MAX_REPORT_ITEMS]
    ]
    text = "\n".join(lines)
    if len(items) > MAX_REPORT_ITEMS:
        text += f"\n... and {len(items) - MAX_REPORT_ITEMS} more"
    return text


def build_global_report_payload(
    items: Iterable[LowStockItem],
    *,
    timestamp: datetime,
    username: Optional[str] = "Inventory Bot",
) -> DiscordWebhookPayload:
    """Aggregate embed: summary, up to MAX_REPORT_ITEMS per bucket, actions."""
    items = list(items)
    report = build_global_report(items)
    has_critical = bool(report.critical)

    fields = [
        DiscordEmbedField(
            name="📈 Summary",
            value=(
                f"**Total Items:** {len(items)}\n"
                f"**Critical (Out of Stock):** {len(report.critical)}\n"
                f"**Low Stock:** {len(report.low_stock)}"
            ),
        )
    ]

    if report.critical:
        fields.append(DiscordEmbedField(
            name=f"🚨 Critical Items ({len(report.critical)})",
            value=_format_bucket(report.critical),
        ))

    if report.low_stock:
        fields.append(DiscordEmbedField(
            name=f"⚠️ Low Stock Items ({len(report.low_stock)})",
            value=_format_bucket(report.low_stock),
        ))

    if has_critical:
        actions = (
            "🔴 **URGENT:** Restock critical items immediately\n"
            "🟡 **PRIORITY:** Review low stock items\n"
            "📋 **PLAN:** Update inventory management strategy"
        )
    else:
        actions = "🟡 **PRIORITY:** Review low stock items\n📋 **PLAN:** Consider restocking soon"
    fields.append(DiscordEmbedField(name="🎯 Recommended Actions", value=actions))

    embed = DiscordEmbed(
        title="📊 GLOBAL INVENTORY REPORT",
        description=f"**{len(items)}** items require attention in your inventory.",
        color=CRITICAL_COLOR if has_critical else LOW_COLOR,
        fields=fields,
        timestamp=timestamp.isoformat(),
        footer=DiscordEmbedFooter(
            text=f"{FOOTER_TEXT} • Generated at {timestamp.strftime('%d/%m/%Y, %H:%M:%S')}"
        ),
        thumbnail=DiscordEmbedThumbnail(url=REPORT_ICON_URL),
    )
    return DiscordWebhookPayload(embeds=[embed], username=username, avatar_url=REPORT_ICON_URL)


class DiscordWebhookTransport(ChannelTransport):
    """
    Posts embed payloads to a Discord webhook.

    A new httpx.AsyncClient is opened per send with the requested timeout;
    `transport` lets tests plug in httpx.MockTransport.
    """

    channel = AlertChannel.DISCORD

    def __init__(
        self,
        webhook_url: str,
        timeout: float = DEFAULT_ALERT_TIMEOUT,
        report_timeout: float = DEFAULT_REPORT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout)
        self.webhook_url = webhook_url or ""
        self.report_timeout = report_timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    @property
    def masked_url(self) -> str:
        """First 20 characters only, for status endpoints"""
        return f"{self.webhook_url[:20]}..." if self.webhook_url else ""

    async def send(self, payload: DiscordWebhookPayload, *, timeout: Optional[float] = None) -> bool:
        if not self.configured:
            logger.warning("Discord webhook URL not configured")
            return False

        timeout = timeout or self.timeout
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json=payload.to_webhook_json(),
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException:
            logger.error("Discord webhook timed out after %.1fs", timeout)
            return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Discord notification: {str(e)}")
            return False

        if not response.is_success:
            logger.error("Discord webhook failed: %s %s", response.status_code, response.text)
            return False

        logger.info("Discord notification sent successfully")
        return True
