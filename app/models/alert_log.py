# app/models/alert_log.py
from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base

class AlertLog(Base):
    """
    Append-only record of every low-stock alert that was actually delivered.

    Rows are keyed by (channel, dedupe_key). Explicit sends look the pair up
    before delivering, and the unique constraint makes a concurrent second
    insert of the same pair fail instead of duplicating the row.

    product_id is 0 for aggregate reports that are not tied to one product.
    """
    __tablename__ = "alert_logs"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, nullable=False, index=True)
    stock_before = Column(Integer, nullable=True)
    stock_after = Column(Integer, nullable=False)
    threshold = Column(Integer, nullable=False)
    channel = Column(String(32), nullable=False)  # 'discord', 'email'
    dedupe_key = Column(Text, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("channel", "dedupe_key", name="uq_alert_logs_channel_dedupe_key"),
    )

    def __repr__(self):
        return f"<AlertLog {self.channel} {self.dedupe_key} product={self.product_id}>"
