class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ProductServiceError(BaseServiceError):
    """Base exception for product service errors."""
    pass

class ProductCreationError(ProductServiceError):
    """Raised when product creation fails."""
    pass

class ProductNotFoundError(ProductServiceError):
    """Raised when product is not found."""
    pass

class NotificationError(BaseServiceError):
    """Base exception for low-stock notification errors."""
    pass

class DuplicateAlertError(NotificationError):
    """Raised when an alert with the same channel and dedupe key was already sent."""

    def __init__(self, channel: str, dedupe_key: str):
        self.channel = channel
        self.dedupe_key = dedupe_key
        super().__init__(f"Alert already sent on {channel} for dedupe key '{dedupe_key}'")

class DeliveryFailedError(NotificationError):
    """Raised when a transport rejects the payload or times out."""

    def __init__(self, channel: str, message: str = ""):
        self.channel = channel
        super().__init__(message or f"Failed to deliver {channel} notification")

class ValidationFailedError(NotificationError):
    """Raised when a notification request is malformed."""

    def __init__(self, message: str, invalid=None):
        self.invalid = list(invalid or [])
        super().__init__(message)
