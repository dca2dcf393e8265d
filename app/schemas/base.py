"""
Base schemas shared by the product and notification models.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Reads ORM objects directly and accepts both field names and camelCase aliases"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )


class TimestampedSchema(BaseSchema):
    """Base schema for rows with server-managed timestamps"""
    created_at: datetime
    updated_at: datetime
