"""
Low-stock notification dispatch.

Two entry points:

- dispatch_automatic: called after a stock mutation has committed. Decides
  whether the product is below threshold, suppresses same-window duplicates
  with the in-memory DedupCache, and sends a Discord alert. Never raises;
  the inventory write it follows has already succeeded and must stay that way.

- dispatch_explicit: user-triggered "notify now" / "send report". Checks the
  durable alert log for the caller's dedupe key, delivers, then records the
  delivery. Failures are raised so the caller can show them.

Recording happens after delivery and is not transactional with it: a crash
or a lost insert between the two can let a retry deliver twice, but the log
never holds more than one row per (channel, dedupe_key).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from app.core.enums import AlertChannel, DispatchOutcome, GLOBAL_REPORT_PRODUCT_ID
from app.core.exceptions import DeliveryFailedError, DuplicateAlertError, ValidationFailedError
from app.integrations.base import ChannelTransport
from app.integrations.channels.discord import (
    DiscordWebhookTransport,
    build_global_report_payload,
    build_stock_alert_payload,
)
from app.integrations.channels.email import EmailReportTransport, parse_recipients
from app.integrations.channels.worker import WorkerIngressTransport, build_ingress_event
from app.integrations.events import StockChangeEvent
from app.schemas.notifications import (
    AlertPayload,
    DispatchResult,
    EmailReportPayload,
    EmailReportRequest,
    ExplicitAlertRequest,
    GlobalReportRequest,
    LowStockItem,
    StockAlertRequest,
)
from app.services.alert_log_store import AlertLogStore
from app.services.dedup_cache import DedupCache
from app.services.reports import build_email_report_data

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class NotificationDispatcher:

    def __init__(
        self,
        *,
        discord: DiscordWebhookTransport,
        email: EmailReportTransport,
        dedup_cache: DedupCache,
        alert_log: Optional[AlertLogStore] = None,
        worker: Optional[WorkerIngressTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        discord_username: str = "Inventory Bot",
    ):
        self.discord = discord
        self.email = email
        self.dedup_cache = dedup_cache
        self.alert_log = alert_log
        self.worker = worker
        self.discord_username = discord_username
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Automatic (mutation-triggered)
    # ------------------------------------------------------------------
    @staticmethod
    def automatic_dedupe_key(event: StockChangeEvent, now_ms: int) -> str:
        # Millisecond timestamp makes every call's key unique, so the cache
        # only catches dispatches racing inside the same millisecond.
        return f"{event.product_id}-{event.stock}-{now_ms}"

    async def dispatch_automatic(self, event: StockChangeEvent) -> DispatchResult:
        if not event.below_threshold:
            return DispatchResult(outcome=DispatchOutcome.SKIPPED)

        now = self._clock()
        dedupe_key = self.automatic_dedupe_key(event, _millis(now))

        if not self.dedup_cache.check_and_mark(dedupe_key):
            logger.debug("Suppressed duplicate low stock alert %s", dedupe_key)
            return DispatchResult(
                outcome=DispatchOutcome.SUPPRESSED,
                channel=AlertChannel.DISCORD,
                dedupe_key=dedupe_key,
            )

        outcome = await self._send_automatic_alert(event, now)
        forwarded = await self._forward_to_worker(event, now)

        return DispatchResult(
            outcome=outcome,
            channel=AlertChannel.DISCORD,
            dedupe_key=dedupe_key,
            forwarded=forwarded,
        )

    async def _send_automatic_alert(self, event: StockChangeEvent, now: datetime) -> DispatchOutcome:
        if not self.discord.configured:
            logger.debug("Discord not configured; automatic alert for %s skipped", event.sku)
            return DispatchOutcome.NOT_CONFIGURED

        try:
            payload = build_stock_alert_payload(
                product_name=event.name,
                sku=event.sku,
                current_stock=event.stock,
                threshold=event.threshold,
                timestamp=now,
                username=self.discord_username,
            )
            sent = await self.discord.send(payload)
        except Exception:
            logger.error("Failed to send Discord notification for product %s", event.product_id, exc_info=True)
            return DispatchOutcome.FAILED

        if not sent:
            logger.warning("Automatic low stock alert for %s was not delivered", event.sku)
            return DispatchOutcome.FAILED
        return DispatchOutcome.SENT

    async def _forward_to_worker(self, event: StockChangeEvent, now: datetime) -> bool:
        if self.worker is None or not self.worker.configured:
            return False
        try:
            return await self.worker.send(build_ingress_event(event, now))
        except Exception:
            logger.error("Failed to emit stock event for product %s", event.product_id, exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Explicit (user-triggered)
    # ------------------------------------------------------------------
    async def dispatch_explicit(self, request: ExplicitAlertRequest) -> DispatchResult:
        """
        Send a user-requested alert or report once per (channel, dedupe_key).

        Returns:
            DispatchResult with outcome SENT, or NOT_CONFIGURED when the
            channel has no endpoint/credentials (nothing is recorded).

        Raises:
            ValidationFailedError: empty item list or bad recipients
            DuplicateAlertError: the key is already in the alert log
            DeliveryFailedError: the transport rejected the payload or timed out
        """
        if self.alert_log is None:
            raise RuntimeError("Explicit dispatch needs an AlertLogStore")

        recipients = self._validate(request)
        now = self._clock()
        channel = AlertChannel(request.channel)
        dedupe_key = request.dedupe_key or f"email-{_millis(now)}"

        if await self.alert_log.exists(channel, dedupe_key):
            logger.info("Alert %s/%s already sent; skipping", channel.value, dedupe_key)
            raise DuplicateAlertError(channel.value, dedupe_key)

        transport = self._transport_for(channel)
        if not transport.configured:
            logger.warning("%s channel not configured; %s not sent", channel.value, request.kind)
            return DispatchResult(
                outcome=DispatchOutcome.NOT_CONFIGURED,
                channel=channel,
                dedupe_key=dedupe_key,
            )

        payload = self._build_payload(request, now, recipients)
        timeout = self.discord.report_timeout if isinstance(request, GlobalReportRequest) else None
        sent = await transport.send(payload, timeout=timeout)
        if not sent:
            raise DeliveryFailedError(channel.value, f"Failed to send {channel.value} {request.kind.replace('_', ' ')}")

        recorded = await self._record(request, channel, dedupe_key)
        return DispatchResult(
            outcome=DispatchOutcome.SENT,
            channel=channel,
            dedupe_key=dedupe_key,
            recorded=recorded,
        )

    def _validate(self, request: ExplicitAlertRequest) -> Sequence[str]:
        if isinstance(request, GlobalReportRequest) and not request.items:
            raise ValidationFailedError("No items provided for global report")
        if isinstance(request, EmailReportRequest):
            recipients = parse_recipients(request.recipients)
            if not request.items:
                raise ValidationFailedError("No low stock items to report")
            return recipients
        return []

    def _transport_for(self, channel: AlertChannel) -> ChannelTransport:
        if channel == AlertChannel.DISCORD:
            return self.discord
        if channel == AlertChannel.EMAIL:
            return self.email
        raise ValueError(f"No transport registered for channel {channel}")

    def _build_payload(
        self,
        request: ExplicitAlertRequest,
        now: datetime,
        recipients: Sequence[str],
    ) -> AlertPayload:
        if isinstance(request, StockAlertRequest):
            return build_stock_alert_payload(
                product_name=request.product_name,
                sku=request.sku,
                current_stock=request.current_stock,
                threshold=request.threshold,
                timestamp=now,
                username=self.discord_username,
            )
        if isinstance(request, GlobalReportRequest):
            return build_global_report_payload(request.items, timestamp=now, username=self.discord_username)
        if isinstance(request, EmailReportRequest):
            return EmailReportPayload(
                recipients=list(recipients),
                subject=request.subject,
                data=build_email_report_data(request.items, now),
            )
        raise ValueError(f"Unsupported alert request: {type(request).__name__}")

    async def _record(self, request: ExplicitAlertRequest, channel: AlertChannel, dedupe_key: str) -> bool:
        if isinstance(request, StockAlertRequest):
            snapshot = dict(
                product_id=request.product_id,
                stock_before=request.current_stock,
                stock_after=request.current_stock,
                threshold=request.threshold,
            )
        else:
            count = len(request.items)
            snapshot = dict(
                product_id=GLOBAL_REPORT_PRODUCT_ID,
                stock_before=count,
                stock_after=count,
                threshold=count,
            )

        try:
            await self.alert_log.record(channel=channel, dedupe_key=dedupe_key, **snapshot)
        except DuplicateAlertError:
            logger.warning("Alert %s/%s delivered but recorded by a concurrent request", channel.value, dedupe_key)
            return False
        except SQLAlchemyError:
            logger.error("Alert %s/%s delivered but could not be recorded", channel.value, dedupe_key, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Test sends (no dedup, no alert log)
    # ------------------------------------------------------------------
    async def send_test_notification(
        self,
        channel: AlertChannel,
        recipients: Union[str, Sequence[str], None] = None,
    ) -> DispatchResult:
        channel = AlertChannel(channel)
        now = self._clock()
        transport = self._transport_for(channel)

        if channel == AlertChannel.EMAIL:
            # Validate before the configuration check so bad input is reported first
            to_addresses = parse_recipients(recipients)
            payload = EmailReportPayload(
                recipients=to_addresses,
                subject="Test Email - Inventory System",
                data=build_email_report_data(
                    [LowStockItem(id=1, name="Test Product", sku="TEST-001", stock=0, threshold=10)],
                    now,
                ),
            )
        else:
            payload = build_stock_alert_payload(
                product_name="Test Product",
                sku="TEST-001",
                current_stock=5,
                threshold=10,
                timestamp=now,
                username=self.discord_username,
            )

        dedupe_key = f"test-{_millis(now)}"
        if not transport.configured:
            return DispatchResult(outcome=DispatchOutcome.NOT_CONFIGURED, channel=channel, dedupe_key=dedupe_key)

        sent = await transport.send(payload)
        return DispatchResult(
            outcome=DispatchOutcome.SENT if sent else DispatchOutcome.FAILED,
            channel=channel,
            dedupe_key=dedupe_key,
        )


async def publish_stock_change(dispatcher: NotificationDispatcher, event: StockChangeEvent) -> Optional[DispatchResult]:
    """
    Post-commit hook target for stock mutations.

    Runs after the product write has committed (as a background task), so
    whatever happens here cannot roll back or fail the mutation.
    """
    try:
        result = await dispatcher.dispatch_automatic(event)
    except Exception:
        logger.error("Low stock dispatch failed for product %s", event.product_id, exc_info=True)
        return None

    if result.outcome != DispatchOutcome.SKIPPED:
        logger.info(
            "Low stock dispatch for %s (stock %s/%s): %s",
            event.sku, event.stock, event.threshold, result.outcome.value,
        )
    return result
