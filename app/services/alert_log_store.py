# app/services/alert_log_store.py
import logging
from typing import List, Optional
from sqlalchemy import select, exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import AlertChannel
from app.core.exceptions import DuplicateAlertError
from app.models.alert_log import AlertLog

logger = logging.getLogger(__name__)

class AlertLogStore:
    """
    Durable record of delivered alerts.

    This is the source of truth for "was this alert already sent" on the
    explicit path. Lookups are by (channel, dedupe_key); the table's unique
    constraint on that pair turns a racing second insert into a
    DuplicateAlertError instead of a second row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, channel: AlertChannel, dedupe_key: str) -> bool:
        """Check if an alert with this channel and dedupe key was recorded."""
        query = select(
            exists().where(
                AlertLog.channel == AlertChannel(channel).value,
                AlertLog.dedupe_key == dedupe_key,
            )
        )
        result = await self.db.scalar(query)
        return bool(result)

    async def record(
        self,
        *,
        product_id: int,
        stock_after: int,
        threshold: int,
        channel: AlertChannel,
        dedupe_key: str,
        stock_before: Optional[int] = None,
    ) -> AlertLog:
        """
        Append a delivered alert.

        Args:
            product_id: Product the alert was about, 0 for aggregate reports
            stock_after: Stock value reported in the alert (item count for reports)
            threshold: Threshold reported in the alert (item count for reports)
            channel: Channel the alert went out on
            dedupe_key: Key the caller used for deduplication
            stock_before: Previous stock value when known

        Returns:
            The stored AlertLog row

        Raises:
            DuplicateAlertError: If (channel, dedupe_key) is already recorded
            SQLAlchemyError: Any other write failure, after rolling the session back
        """
        channel = AlertChannel(channel)
        entry = AlertLog(
            product_id=product_id,
            stock_before=stock_before,
            stock_after=stock_after,
            threshold=threshold,
            channel=channel.value,
            dedupe_key=dedupe_key,
        )
        self.db.add(entry)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning("Alert log already holds %s/%s; insert rejected", channel.value, dedupe_key)
            raise DuplicateAlertError(channel.value, dedupe_key)
        except SQLAlchemyError:
            # Leave the session usable for the next lookup on the same store
            await self.db.rollback()
            raise

        logger.debug(f"Alert logged: {channel.value} {dedupe_key} (product: {product_id})")
        return entry

    async def list_recent(self, limit: int = 50, channel: Optional[AlertChannel] = None) -> List[AlertLog]:
        query = select(AlertLog).order_by(AlertLog.created_at.desc(), AlertLog.id.desc()).limit(limit)
        if channel is not None:
            query = query.where(AlertLog.channel == AlertChannel(channel).value)
        result = await self.db.execute(query)
        return list(result.scalars().all())
