#!/usr/bin/env python3
"""
Send the daily low-stock report.

Usage:
    python scripts/send_low_stock_report.py
    python scripts/send_low_stock_report.py --channel discord
    python scripts/send_low_stock_report.py --channel email --email ops@example.com

Loads every product below its threshold and sends a global Discord report
and/or an email report. Both use the dedupe key report-YYYY-MM-DD, so running
the script twice on the same day is reported as already sent instead of
delivering again.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.enums import DispatchOutcome
from app.core.exceptions import DuplicateAlertError, NotificationError
from app.database import async_session
from app.integrations.channels.discord import DiscordWebhookTransport
from app.integrations.channels.email import EmailReportTransport, recipients_or_default
from app.schemas.notifications import EmailReportRequest, GlobalReportRequest
from app.services.alert_log_store import AlertLogStore
from app.services.dedup_cache import DedupCache
from app.services.notification_service import NotificationDispatcher
from app.services.product_service import ProductService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def daily_dedupe_key(today=None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"report-{today.isoformat()}"


async def main(channels, email=None, subject="Daily Low Stock Report") -> int:
    settings = get_settings()
    dedupe_key = daily_dedupe_key()
    failures = 0

    async with async_session() as db:
        items = await ProductService(db).list_low_stock()
        if not items:
            logger.info("No low stock items; nothing to report")
            return 0

        dispatcher = NotificationDispatcher(
            discord=DiscordWebhookTransport(
                settings.DISCORD_WEBHOOK_URL,
                timeout=settings.DISCORD_ALERT_TIMEOUT,
                report_timeout=settings.DISCORD_REPORT_TIMEOUT,
            ),
            email=EmailReportTransport(settings),
            dedup_cache=DedupCache(window_ms=settings.ALERT_DEDUPE_WINDOW_MS),
            alert_log=AlertLogStore(db),
            discord_username=settings.DISCORD_USERNAME,
        )

        requests = []
        if "discord" in channels:
            requests.append(GlobalReportRequest(items=items, dedupe_key=dedupe_key))
        if "email" in channels:
            try:
                recipients = recipients_or_default(email, settings)
            except NotificationError as e:
                logger.error("Email report skipped: %s", e)
                failures += 1
            else:
                requests.append(
                    EmailReportRequest(recipients=recipients, subject=subject, items=items, dedupe_key=dedupe_key)
                )

        for request in requests:
            try:
                result = await dispatcher.dispatch_explicit(request)
            except DuplicateAlertError:
                logger.info("%s report already sent today (%s)", request.channel, dedupe_key)
                continue
            except NotificationError as e:
                logger.error("%s report failed: %s", request.channel, e)
                failures += 1
                continue
            except SQLAlchemyError as e:
                logger.error("%s report failed on the alert log: %s", request.channel, e)
                failures += 1
                continue

            if result.outcome == DispatchOutcome.NOT_CONFIGURED:
                logger.warning("%s not configured; report skipped", request.channel)
            else:
                logger.info("%s report sent with %d items", request.channel, len(items))

    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send the low stock report")
    parser.add_argument(
        "--channel",
        choices=["discord", "email", "all"],
        default="all",
        help="Channel to send the report on",
    )
    parser.add_argument("--email", help="Recipients (comma or semicolon separated); defaults to NOTIFICATION_EMAILS")
    parser.add_argument("--subject", default="Daily Low Stock Report")
    args = parser.parse_args()

    selected = ["discord", "email"] if args.channel == "all" else [args.channel]
    sys.exit(asyncio.run(main(selected, email=args.email, subject=args.subject)))
