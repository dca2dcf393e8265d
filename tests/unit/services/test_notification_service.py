# tests/unit/services/test_notification_service.py
import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.enums import AlertChannel, DispatchOutcome, GLOBAL_REPORT_PRODUCT_ID
from app.core.exceptions import DeliveryFailedError, DuplicateAlertError, ValidationFailedError
from app.integrations.channels.discord import CRITICAL_COLOR, LOW_COLOR
from app.integrations.events import StockChangeEvent
from app.models.alert_log import AlertLog
from app.schemas.notifications import (
    EmailReportRequest,
    GlobalReportRequest,
    LowStockItem,
    StockAlertRequest,
)
from app.services.alert_log_store import AlertLogStore
from app.services.dedup_cache import DedupCache
from app.services.notification_service import NotificationDispatcher, publish_stock_change
from tests.mocks.mock_transport import MockTransport


REPORT_ITEMS = [
    LowStockItem(id=5, name="Red Widget", sku="RW-005", stock=0, threshold=10),
    LowStockItem(id=6, name="Blue Widget", sku="BW-006", stock=3, threshold=10),
]


def make_event(product_id: int = 5, stock: int = 0, threshold: int = 10, **kwargs) -> StockChangeEvent:
    return StockChangeEvent(
        product_id=product_id,
        sku=f"SKU-{product_id}",
        name=f"Product {product_id}",
        stock=stock,
        threshold=threshold,
        **kwargs,
    )


@pytest.fixture
def dispatcher(discord_transport, email_transport, dedup_cache, worker_transport, clock):
    return NotificationDispatcher(
        discord=discord_transport,
        email=email_transport,
        dedup_cache=dedup_cache,
        worker=worker_transport,
        clock=clock,
    )


@pytest.fixture
def explicit_dispatcher(discord_transport, email_transport, dedup_cache, db_session, clock):
    return NotificationDispatcher(
        discord=discord_transport,
        email=email_transport,
        dedup_cache=dedup_cache,
        alert_log=AlertLogStore(db_session),
        clock=clock,
    )


async def count_logs(db_session) -> int:
    return await db_session.scalar(select(func.count()).select_from(AlertLog))


# --- Automatic dispatch ---

@pytest.mark.asyncio
async def test_not_below_threshold_is_a_no_op(dispatcher, discord_transport, worker_transport, dedup_cache):
    result = await dispatcher.dispatch_automatic(make_event(stock=10, threshold=10))

    assert result.outcome == DispatchOutcome.SKIPPED
    assert discord_transport.calls == []
    assert worker_transport.bodies == []
    assert len(dedup_cache) == 0


@pytest.mark.asyncio
async def test_below_threshold_flag_from_event_is_respected(dispatcher, discord_transport):
    result = await dispatcher.dispatch_automatic(make_event(stock=2, threshold=10, below_threshold=False))

    assert result.outcome == DispatchOutcome.SKIPPED
    assert discord_transport.calls == []


@pytest.mark.asyncio
async def test_out_of_stock_sends_critical_payload(dispatcher, discord_transport):
    result = await dispatcher.dispatch_automatic(make_event(product_id=5, stock=0, threshold=10))

    assert result.outcome == DispatchOutcome.SENT
    embed = discord_transport.payloads[0].embeds[0]
    assert "CRITICAL" in embed.title
    assert embed.color == CRITICAL_COLOR
    assert embed.footer.text == "Inventory Management System"
    assert embed.timestamp == "2024-01-01T09:30:00+00:00"


@pytest.mark.asyncio
async def test_low_stock_sends_low_payload(dispatcher, discord_transport):
    result = await dispatcher.dispatch_automatic(make_event(product_id=6, stock=3, threshold=10))

    assert result.outcome == DispatchOutcome.SENT
    embed = discord_transport.payloads[0].embeds[0]
    assert "LOW" in embed.title
    assert "CRITICAL" not in embed.title
    assert embed.color == LOW_COLOR
    assert embed.color != CRITICAL_COLOR


@pytest.mark.asyncio
async def test_dedupe_key_embeds_millisecond_time(dispatcher, clock):
    result = await dispatcher.dispatch_automatic(make_event(product_id=5, stock=0))

    now_ms = int(clock().timestamp() * 1000)
    assert result.dedupe_key == f"5-0-{now_ms}"


@pytest.mark.asyncio
async def test_same_millisecond_repeat_is_suppressed(dispatcher, discord_transport):
    first = await dispatcher.dispatch_automatic(make_event())
    second = await dispatcher.dispatch_automatic(make_event())

    assert first.outcome == DispatchOutcome.SENT
    assert second.outcome == DispatchOutcome.SUPPRESSED
    assert len(discord_transport.calls) == 1


@pytest.mark.asyncio
async def test_calls_a_millisecond_apart_are_not_suppressed(discord_transport, email_transport, clock):
    # The time-based key differs per call, so the cache does not catch these
    base = clock()
    ticks = iter([base, base.replace(microsecond=1000)])
    dispatcher = NotificationDispatcher(
        discord=discord_transport,
        email=email_transport,
        dedup_cache=DedupCache(),
        clock=lambda: next(ticks),
    )

    first = await dispatcher.dispatch_automatic(make_event())
    second = await dispatcher.dispatch_automatic(make_event())

    assert first.dedupe_key != second.dedupe_key
    assert second.outcome == DispatchOutcome.SENT
    assert len(discord_transport.calls) == 2


@pytest.mark.asyncio
async def test_unconfigured_discord_is_not_configured_outcome(dispatcher, discord_transport):
    discord_transport.is_configured = False

    result = await dispatcher.dispatch_automatic(make_event())

    assert result.outcome == DispatchOutcome.NOT_CONFIGURED
    assert discord_transport.calls == []


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed(dispatcher, discord_transport):
    discord_transport.should_fail = True

    result = await dispatcher.dispatch_automatic(make_event())

    assert result.outcome == DispatchOutcome.FAILED


@pytest.mark.asyncio
async def test_transport_exception_is_swallowed(dispatcher, discord_transport, mocker):
    mocker.patch.object(discord_transport, "send", AsyncMock(side_effect=RuntimeError("boom")))

    result = await dispatcher.dispatch_automatic(make_event())

    assert result.outcome == DispatchOutcome.FAILED


@pytest.mark.asyncio
async def test_forwards_event_to_worker(dispatcher, worker_transport):
    result = await dispatcher.dispatch_automatic(make_event(product_id=5, stock=0))

    assert result.forwarded is True
    body = worker_transport.bodies[0]
    assert body["type"] == "product.stock.updated"
    assert body["data"]["productId"] == 5
    assert body["data"]["stock"] == 0


@pytest.mark.asyncio
async def test_unset_worker_is_skipped_silently(dispatcher, worker_transport):
    worker_transport.is_configured = False

    result = await dispatcher.dispatch_automatic(make_event())

    assert result.outcome == DispatchOutcome.SENT
    assert result.forwarded is False
    assert worker_transport.bodies == []


@pytest.mark.asyncio
async def test_publish_stock_change_never_raises(dispatcher, mocker):
    mocker.patch.object(dispatcher, "dispatch_automatic", AsyncMock(side_effect=RuntimeError("boom")))

    assert await publish_stock_change(dispatcher, make_event()) is None


@pytest.mark.asyncio
async def test_publish_stock_change_returns_result(dispatcher, discord_transport):
    result = await publish_stock_change(dispatcher, make_event(stock=1))

    assert result.outcome == DispatchOutcome.SENT
    assert len(discord_transport.calls) == 1


# --- Explicit dispatch ---

@pytest.mark.asyncio
async def test_explicit_requires_alert_log(dispatcher):
    request = GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
    with pytest.raises(RuntimeError):
        await dispatcher.dispatch_explicit(request)


@pytest.mark.asyncio
async def test_stock_alert_records_snapshot(explicit_dispatcher, discord_transport, db_session):
    request = StockAlertRequest(
        product_id=5, product_name="Red Widget", sku="RW-005",
        current_stock=0, threshold=10, dedupe_key="manual-5-1",
    )

    result = await explicit_dispatcher.dispatch_explicit(request)

    assert result.outcome == DispatchOutcome.SENT
    assert result.recorded is True
    assert len(discord_transport.calls) == 1

    row = (await db_session.execute(select(AlertLog))).scalar_one()
    assert (row.product_id, row.stock_before, row.stock_after, row.threshold) == (5, 0, 0, 10)
    assert (row.channel, row.dedupe_key) == ("discord", "manual-5-1")


@pytest.mark.asyncio
async def test_repeated_report_key_is_duplicate(explicit_dispatcher, discord_transport, db_session):
    request = GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")

    first = await explicit_dispatcher.dispatch_explicit(request)
    with pytest.raises(DuplicateAlertError):
        await explicit_dispatcher.dispatch_explicit(request)

    assert first.outcome == DispatchOutcome.SENT
    assert len(discord_transport.calls) == 1
    assert await count_logs(db_session) == 1


@pytest.mark.asyncio
async def test_existing_key_fails_without_sending(explicit_dispatcher, discord_transport, db_session):
    await AlertLogStore(db_session).record(
        product_id=0, stock_after=2, threshold=2, channel="discord", dedupe_key="report-2024-01-01",
    )

    with pytest.raises(DuplicateAlertError):
        await explicit_dispatcher.dispatch_explicit(
            GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
        )

    assert discord_transport.calls == []


@pytest.mark.asyncio
async def test_failed_delivery_writes_nothing_and_allows_retry(explicit_dispatcher, discord_transport, db_session):
    request = GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
    discord_transport.should_fail = True

    with pytest.raises(DeliveryFailedError):
        await explicit_dispatcher.dispatch_explicit(request)
    assert await count_logs(db_session) == 0

    discord_transport.should_fail = False
    result = await explicit_dispatcher.dispatch_explicit(request)

    assert result.outcome == DispatchOutcome.SENT
    assert await count_logs(db_session) == 1


@pytest.mark.asyncio
async def test_global_report_uses_report_timeout_and_records_item_count(explicit_dispatcher, discord_transport, db_session):
    await explicit_dispatcher.dispatch_explicit(
        GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
    )

    assert discord_transport.calls[0]["timeout"] == discord_transport.report_timeout
    embed = discord_transport.payloads[0].embeds[0]
    assert embed.title == "📊 GLOBAL INVENTORY REPORT"
    assert embed.color == CRITICAL_COLOR

    row = (await db_session.execute(select(AlertLog))).scalar_one()
    assert row.product_id == GLOBAL_REPORT_PRODUCT_ID
    assert (row.stock_before, row.stock_after, row.threshold) == (2, 2, 2)


@pytest.mark.asyncio
async def test_empty_report_is_validation_failure(explicit_dispatcher, discord_transport):
    with pytest.raises(ValidationFailedError):
        await explicit_dispatcher.dispatch_explicit(GlobalReportRequest(items=[], dedupe_key="report-x"))
    assert discord_transport.calls == []


@pytest.mark.asyncio
async def test_not_configured_channel_records_nothing(explicit_dispatcher, discord_transport, db_session):
    discord_transport.is_configured = False

    result = await explicit_dispatcher.dispatch_explicit(
        GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
    )

    assert result.outcome == DispatchOutcome.NOT_CONFIGURED
    assert discord_transport.calls == []
    assert await count_logs(db_session) == 0


@pytest.mark.asyncio
async def test_email_report_sends_structured_payload(explicit_dispatcher, email_transport, db_session):
    request = EmailReportRequest(
        recipients="a@x.com, b@y.com; c@z.com",
        subject="Low stock",
        items=REPORT_ITEMS,
        dedupe_key="email-2024-01-01",
    )

    result = await explicit_dispatcher.dispatch_explicit(request)

    assert result.outcome == DispatchOutcome.SENT
    assert result.channel == AlertChannel.EMAIL
    payload = email_transport.payloads[0]
    assert payload.channel == "email"
    assert payload.recipients == ["a@x.com", "b@y.com", "c@z.com"]
    assert payload.data.total_items == 2
    assert payload.data.critical_items == 1
    assert payload.data.low_stock_items == 1
    assert payload.data.report_date == "01/01/2024"
    assert await AlertLogStore(db_session).exists(AlertChannel.EMAIL, "email-2024-01-01")


@pytest.mark.asyncio
async def test_email_report_without_key_uses_time_based_key(explicit_dispatcher, clock):
    request = EmailReportRequest(recipients="ops@example.com", subject="Low stock", items=REPORT_ITEMS)

    result = await explicit_dispatcher.dispatch_explicit(request)

    assert result.dedupe_key == f"email-{int(clock().timestamp() * 1000)}"


@pytest.mark.asyncio
async def test_invalid_recipient_aborts_whole_send(explicit_dispatcher, email_transport):
    request = EmailReportRequest(
        recipients="ops@example.com;not-an-email", subject="Low stock", items=REPORT_ITEMS, dedupe_key="e-1",
    )

    with pytest.raises(ValidationFailedError) as exc_info:
        await explicit_dispatcher.dispatch_explicit(request)

    assert exc_info.value.invalid == ["not-an-email"]
    assert email_transport.calls == []


@pytest.mark.asyncio
async def test_record_failure_after_delivery_is_reported_not_raised(explicit_dispatcher, discord_transport, mocker):
    mocker.patch.object(
        explicit_dispatcher.alert_log, "record",
        AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("db gone"))),
    )

    result = await explicit_dispatcher.dispatch_explicit(
        GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
    )

    assert result.outcome == DispatchOutcome.SENT
    assert result.recorded is False
    assert len(discord_transport.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_identical_requests_record_one_row(discord_transport, email_transport, clock, mocker):
    """Both pass the existence check, both deliver, only one insert wins."""
    store = AlertLogStore(AsyncMock())
    store.exists = AsyncMock(return_value=False)
    store.record = AsyncMock(side_effect=[None, DuplicateAlertError("discord", "report-2024-01-01")])
    dispatcher = NotificationDispatcher(
        discord=discord_transport,
        email=email_transport,
        dedup_cache=DedupCache(),
        alert_log=store,
        clock=clock,
    )
    request = GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")

    results = await asyncio.gather(dispatcher.dispatch_explicit(request), dispatcher.dispatch_explicit(request))

    assert sorted(result.recorded for result in results) == [False, True]
    assert store.record.await_count == 2


@pytest.mark.asyncio
async def test_failed_record_leaves_session_usable(explicit_dispatcher, test_engine, db_session, email_transport):
    failed = []

    def fail_first_alert_log_insert(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("INSERT INTO alert_logs") and not failed:
            failed.append(statement)
            raise OperationalError(statement, parameters, Exception("disk I/O error"))

    event.listen(test_engine.sync_engine, "before_cursor_execute", fail_first_alert_log_insert)
    try:
        report = await explicit_dispatcher.dispatch_explicit(
            GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")
        )
        email = await explicit_dispatcher.dispatch_explicit(
            EmailReportRequest(
                recipients="ops@example.com",
                subject="Low stock",
                items=REPORT_ITEMS,
                dedupe_key="report-2024-01-01",
            )
        )
    finally:
        event.remove(test_engine.sync_engine, "before_cursor_execute", fail_first_alert_log_insert)

    assert report.outcome == DispatchOutcome.SENT
    assert report.recorded is False
    assert email.outcome == DispatchOutcome.SENT
    assert email.recorded is True
    assert len(email_transport.calls) == 1

    rows = (await db_session.execute(select(AlertLog))).scalars().all()
    assert [(row.channel, row.dedupe_key) for row in rows] == [("email", "report-2024-01-01")]


class GatedTransport(MockTransport):
    """Holds every send until the expected number of callers have arrived."""

    def __init__(self, parties: int):
        super().__init__(channel="discord")
        self.parties = parties
        self.arrived = 0
        self.all_arrived = asyncio.Event()

    async def send(self, payload, *, timeout=None):
        self.arrived += 1
        if self.arrived >= self.parties:
            self.all_arrived.set()
        await self.all_arrived.wait()
        return await super().send(payload, timeout=timeout)


@pytest.mark.asyncio
async def test_concurrent_identical_requests_share_one_log_row(route_db_url, email_transport, clock):
    """Two sessions both pass the existence check; the unique constraint keeps one row."""
    engine = create_async_engine(route_db_url, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    discord = GatedTransport(parties=2)
    request = GlobalReportRequest(items=REPORT_ITEMS, dedupe_key="report-2024-01-01")

    try:
        async with session_factory() as first, session_factory() as second:
            dispatchers = [
                NotificationDispatcher(
                    discord=discord,
                    email=email_transport,
                    dedup_cache=DedupCache(),
                    alert_log=AlertLogStore(session),
                    clock=clock,
                )
                for session in (first, second)
            ]
            results = await asyncio.wait_for(
                asyncio.gather(*(dispatcher.dispatch_explicit(request) for dispatcher in dispatchers)),
                timeout=30,
            )

        async with session_factory() as session:
            row_count = await session.scalar(select(func.count()).select_from(AlertLog))
    finally:
        await engine.dispose()

    assert len(discord.calls) == 2
    assert sorted(result.recorded for result in results) == [False, True]
    assert row_count == 1


# --- Test notifications ---

@pytest.mark.asyncio
async def test_discord_test_notification(dispatcher, discord_transport):
    result = await dispatcher.send_test_notification(AlertChannel.DISCORD)

    assert result.outcome == DispatchOutcome.SENT
    embed = discord_transport.payloads[0].embeds[0]
    assert "Test Product" in embed.description
    assert embed.color == LOW_COLOR


@pytest.mark.asyncio
async def test_email_test_notification(dispatcher, email_transport):
    result = await dispatcher.send_test_notification(AlertChannel.EMAIL, "ops@example.com")

    assert result.outcome == DispatchOutcome.SENT
    payload = email_transport.payloads[0]
    assert payload.subject == "Test Email - Inventory System"
    assert payload.data.items[0].sku == "TEST-001"


@pytest.mark.asyncio
async def test_email_test_notification_validates_first(dispatcher, email_transport):
    email_transport.is_configured = False

    with pytest.raises(ValidationFailedError):
        await dispatcher.send_test_notification(AlertChannel.EMAIL, "nope")
