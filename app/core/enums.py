"""
Shared enums and constants used across the application.
"""

from enum import Enum


class AlertChannel(str, Enum):
    """Outbound notification channels recorded in the alert log"""
    DISCORD = "discord"
    EMAIL = "email"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"  # stock == 0
    LOW = "low"            # 0 < stock < threshold

    @classmethod
    def for_stock(cls, stock: int) -> "AlertSeverity":
        return cls.CRITICAL if stock == 0 else cls.LOW


class DispatchOutcome(str, Enum):
    """What happened to a single dispatch attempt"""
    SENT = "sent"
    SKIPPED = "skipped"                # not below threshold
    SUPPRESSED = "suppressed"          # in-memory dedup hit
    NOT_CONFIGURED = "not_configured"  # channel disabled by configuration
    FAILED = "failed"


# product_id used in the alert log for aggregate reports
GLOBAL_REPORT_PRODUCT_ID = 0
