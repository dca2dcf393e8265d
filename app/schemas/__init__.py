"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema, TimestampedSchema

# Product schemas
from .product import (
    ProductBase,
    ProductCreate,
    ProductUpdate,
    ProductUpdateRequest,
    ProductRead,
    StockUpdate,
)

# Notification schemas
from .notifications import (
    LowStockItem,
    GlobalReport,
    DiscordWebhookPayload,
    EmailReportData,
    EmailReportPayload,
    AlertPayload,
    StockAlertRequest,
    GlobalReportRequest,
    EmailReportRequest,
    ExplicitAlertRequest,
    EmailTestRequest,
    DispatchResult,
    AlertLogRead,
)
