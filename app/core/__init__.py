"""
Core module exports.
"""
from .enums import (
    AlertChannel,
    AlertSeverity,
    DispatchOutcome,
    GLOBAL_REPORT_PRODUCT_ID,
)

from .exceptions import (
    BaseServiceError,
    ProductServiceError,
    ProductCreationError,
    ProductNotFoundError,
    NotificationError,
    DuplicateAlertError,
    DeliveryFailedError,
    ValidationFailedError,
)

from .utils import (
    model_to_schema,
    models_to_schemas,
)
