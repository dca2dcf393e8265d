from .product import Product
from .alert_log import AlertLog

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Product',
    'AlertLog',
]
