from typing import Any

from pydantic import BaseModel, Field


class RunRequest(BaseModel):
    """Body for a manually triggered notification run."""

    detectors: list[str] | None = Field(
        default=None, description="Detector event types to run; all configured ones when omitted"
    )


class EventRequest(BaseModel):
    """An out-of-cycle event raised by another subsystem (document signed, new order)."""

    type: str = Field(..., min_length=1, max_length=100, description="Notification type, e.g. document_signed")
    event_type: str = Field(..., min_length=1, max_length=100)
    entity_id: str | None = None
    entity_key: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class RecipientCreateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=32)
    event_types: list[str] = Field(default_factory=list)
    is_active: bool = True


class RecipientUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=32)
    event_types: list[str] | None = None
    is_active: bool | None = None
