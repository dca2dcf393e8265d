from typing import AsyncGenerator
from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.database import async_session
from app.integrations.channels.discord import DiscordWebhookTransport
from app.integrations.channels.email import EmailReportTransport
from app.integrations.channels.worker import WorkerIngressTransport
from app.integrations.events import StockChangeEvent
from app.services.alert_log_store import AlertLogStore
from app.services.dedup_cache import DedupCache
from app.services.notification_service import NotificationDispatcher, publish_stock_change
from app.services.product_service import ProductService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_dedup_cache(request: Request, settings: Settings = Depends(get_settings)) -> DedupCache:
    """Process-wide cache owned by the app (created in the lifespan)."""
    cache = getattr(request.app.state, "dedup_cache", None)
    if cache is None:
        cache = DedupCache(window_ms=settings.ALERT_DEDUPE_WINDOW_MS)
        request.app.state.dedup_cache = cache
    return cache


def get_discord_transport(settings: Settings = Depends(get_settings)) -> DiscordWebhookTransport:
    return DiscordWebhookTransport(
        settings.DISCORD_WEBHOOK_URL,
        timeout=settings.DISCORD_ALERT_TIMEOUT,
        report_timeout=settings.DISCORD_REPORT_TIMEOUT,
    )


def get_email_transport(settings: Settings = Depends(get_settings)) -> EmailReportTransport:
    return EmailReportTransport(settings)


def get_worker_transport(settings: Settings = Depends(get_settings)) -> WorkerIngressTransport:
    return WorkerIngressTransport(
        settings.WORKER_INGRESS_URL,
        shared_secret=settings.WORKER_SHARED_SECRET,
        timeout=settings.WORKER_TIMEOUT,
    )


def get_automatic_dispatcher(
    settings: Settings = Depends(get_settings),
    dedup_cache: DedupCache = Depends(get_dedup_cache),
    discord: DiscordWebhookTransport = Depends(get_discord_transport),
    email: EmailReportTransport = Depends(get_email_transport),
    worker: WorkerIngressTransport = Depends(get_worker_transport),
) -> NotificationDispatcher:
    """Dispatcher for post-commit alerts. Holds no DB session so it can outlive the request."""
    return NotificationDispatcher(
        discord=discord,
        email=email,
        dedup_cache=dedup_cache,
        worker=worker,
        discord_username=settings.DISCORD_USERNAME,
    )


def get_notification_dispatcher(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dedup_cache: DedupCache = Depends(get_dedup_cache),
    discord: DiscordWebhookTransport = Depends(get_discord_transport),
    email: EmailReportTransport = Depends(get_email_transport),
) -> NotificationDispatcher:
    return NotificationDispatcher(
        discord=discord,
        email=email,
        dedup_cache=dedup_cache,
        alert_log=AlertLogStore(db),
        discord_username=settings.DISCORD_USERNAME,
    )


def get_product_service(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_automatic_dispatcher),
) -> ProductService:
    """ProductService whose stock changes schedule automatic dispatch after the response."""

    def on_stock_change(event: StockChangeEvent) -> None:
        background_tasks.add_task(publish_stock_change, dispatcher, event)

    return ProductService(db, on_stock_change=on_stock_change)


def get_alert_log_store(db: AsyncSession = Depends(get_db)) -> AlertLogStore:
    return AlertLogStore(db)
