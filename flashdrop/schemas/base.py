"""
Base schemas with common functionality.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict

from flashdrop.core.enums import ErrorCode


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )


class Outcome(BaseSchema):
    """
    Discriminated engine result: success, or an error code plus a human
    readable message. Business rejections are returned, never raised.
    """
    success: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
