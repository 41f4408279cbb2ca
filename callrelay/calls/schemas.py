"""Call schemas for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScheduleCallRequest(BaseModel):
    """Schema for scheduling an outbound agent call."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(..., alias="phoneNumber", min_length=1, description="Number to call (E.164)")
    scheduled_time: datetime = Field(..., alias="scheduledTime", description="ISO-8601 start time")
    duration: Optional[int] = Field(None, gt=0, description="Duration in minutes")
    recipient_name: Optional[str] = Field(None, alias="recipientName")
    recipient_email: Optional[str] = Field(None, alias="recipientEmail")
    topic: Optional[str] = None
    description: Optional[str] = None


class RescheduleCallRequest(BaseModel):
    """Schema for moving a call to a new time."""

    model_config = ConfigDict(populate_by_name=True)

    new_scheduled_time: datetime = Field(..., alias="newScheduledTime")
    reason: Optional[str] = None


class CancelCallRequest(BaseModel):
    """Schema for cancelling a call."""

    reason: Optional[str] = None


class ProviderWebhookEvent(BaseModel):
    """Call event posted by the voice provider."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)
    timestamp: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

