# app/routes/notifications.py
"""
User-triggered notification endpoints.

Explicit sends go through NotificationDispatcher.dispatch_explicit, which
checks the alert log before delivering. Dispatcher errors are translated
here: duplicate 409, delivery failure 502, bad input 400, and a channel
with no configuration 503 with `configured: false`.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from app.core.enums import AlertChannel, DispatchOutcome
from app.core.exceptions import DeliveryFailedError, DuplicateAlertError, ValidationFailedError
from app.dependencies import (
    get_alert_log_store,
    get_discord_transport,
    get_notification_dispatcher,
    get_product_service,
)
from app.integrations.channels.discord import DiscordWebhookTransport
from app.integrations.channels.email import parse_recipients
from app.schemas.notifications import (
    AlertLogRead,
    DispatchResult,
    EmailReportRequest,
    EmailTestRequest,
    ExplicitAlertRequest,
    GlobalReportRequest,
    LowStockItem,
    StockAlertRequest,
)
from app.services.alert_log_store import AlertLogStore
from app.services.notification_service import NotificationDispatcher
from app.services.product_service import ProductService
from app.services.reports import build_global_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notifications"])


def _not_configured(channel: AlertChannel) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "configured": False,
            "error": f"{channel.value.capitalize()} notifications are not configured",
        },
    )


def _report_counts(items: List[LowStockItem]) -> dict:
    report = build_global_report(items)
    return {
        "itemsReported": report.total,
        "criticalItems": len(report.critical),
        "lowStockItems": len(report.low_stock),
    }


async def _dispatch(dispatcher: NotificationDispatcher, request: ExplicitAlertRequest) -> DispatchResult:
    try:
        return await dispatcher.dispatch_explicit(request)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateAlertError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DeliveryFailedError as e:
        raise HTTPException(status_code=502, detail=str(e))


def _preview(items: List[LowStockItem]) -> dict:
    report = build_global_report(items)
    return {
        "success": True,
        "lowStockItems": [item.model_dump() for item in items],
        "totalItems": len(items),
        "criticalItems": len(report.critical),
        "lowStockOnly": len(report.low_stock),
    }


# ----------------------------------------------------------------------
# Discord
# ----------------------------------------------------------------------
@router.post("/notifications/discord")
async def send_stock_alert(
    request: StockAlertRequest,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Send a low-stock alert for one product, once per dedupe key."""
    result = await _dispatch(dispatcher, request)
    if result.outcome == DispatchOutcome.NOT_CONFIGURED:
        return _not_configured(AlertChannel.DISCORD)
    return {"success": True, "dedupeKey": result.dedupe_key, "recorded": result.recorded}


@router.get("/notifications/discord")
async def discord_configuration(
    discord: DiscordWebhookTransport = Depends(get_discord_transport),
):
    if not discord.configured:
        return _not_configured(AlertChannel.DISCORD)
    return {"success": True, "configured": True, "webhookUrl": discord.masked_url}


@router.post("/notifications/discord/test")
async def send_discord_test(
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    result = await dispatcher.send_test_notification(AlertChannel.DISCORD)
    if result.outcome == DispatchOutcome.NOT_CONFIGURED:
        return _not_configured(AlertChannel.DISCORD)
    if result.outcome != DispatchOutcome.SENT:
        raise HTTPException(status_code=502, detail="Failed to send Discord test notification")
    return {"success": True, "message": "Test notification sent"}


# ----------------------------------------------------------------------
# Global report
# ----------------------------------------------------------------------
@router.post("/notifications/global-report")
async def send_global_report(
    request: GlobalReportRequest,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    result = await _dispatch(dispatcher, request)
    if result.outcome == DispatchOutcome.NOT_CONFIGURED:
        return _not_configured(AlertChannel.DISCORD)
    return {"success": True, "recorded": result.recorded, **_report_counts(request.items)}


@router.get("/notifications/global-report")
async def preview_global_report(service: ProductService = Depends(get_product_service)):
    return _preview(await service.list_low_stock())


# ----------------------------------------------------------------------
# Email report
# ----------------------------------------------------------------------
@router.post("/notifications/email")
async def send_email_report(
    request: EmailReportRequest,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    service: ProductService = Depends(get_product_service),
):
    """Email a low-stock report. Without items, the current low-stock products are used."""
    try:
        recipients = parse_recipients(request.recipients)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not request.items:
        request = request.model_copy(update={"items": await service.list_low_stock()})

    result = await _dispatch(dispatcher, request)
    if result.outcome == DispatchOutcome.NOT_CONFIGURED:
        return _not_configured(AlertChannel.EMAIL)
    return {
        "success": True,
        "recorded": result.recorded,
        "recipients": recipients,
        **_report_counts(request.items),
    }


@router.get("/notifications/email")
async def preview_email_report(service: ProductService = Depends(get_product_service)):
    return _preview(await service.list_low_stock())


@router.post("/test-email")
async def send_test_email(
    request: EmailTestRequest,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    logger.info("Testing email sending to: %s", request.recipients)
    try:
        result = await dispatcher.send_test_notification(AlertChannel.EMAIL, request.recipients)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.outcome == DispatchOutcome.NOT_CONFIGURED:
        return _not_configured(AlertChannel.EMAIL)
    if result.outcome != DispatchOutcome.SENT:
        raise HTTPException(status_code=502, detail="Failed to send test email")
    return {"success": True, "message": "Test email sent successfully", "email": request.recipients}


# ----------------------------------------------------------------------
# Alert log
# ----------------------------------------------------------------------
@router.get("/notifications/logs", response_model=List[AlertLogRead])
async def list_alert_logs(
    limit: int = Query(default=50, ge=1, le=500),
    channel: Optional[AlertChannel] = None,
    store: AlertLogStore = Depends(get_alert_log_store),
):
    return await store.list_recent(limit=limit, channel=channel)
