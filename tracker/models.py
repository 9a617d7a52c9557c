"""
Data models for the tracker.
Defines tracking results, live presence records and the event envelopes
exchanged with connected viewers.

Wire names are camelCase; Python attributes are snake_case.
"""

import json
from enum import Enum
from datetime import datetime, timezone
from typing import Any, Optional, Union
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from tracker.exceptions import ValidationError


class CarrierTag(str, Enum):
    """Carriers an identifier can belong to."""
    UPS = "ups"
    FEDEX = "fedex"
    DHL = "dhl"
    USPS = "usps"
    AMAZON = "amazon"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return self.value.upper()


class SessionStatus(str, Enum):
    """Authentication state of a provider session."""
    NO_SESSION = "no_session"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"
    FAILED = "failed"


# ===== Tracking =====

class GeoPoint(BaseModel):
    lat: float
    lon: float


class ActivityEvent(BaseModel):
    """A single scan or status change in a shipment's history."""

    status: str
    location: str = ""
    timestamp: datetime
    geo: Optional[GeoPoint] = None


class TrackingResult(BaseModel):
    """Normalized tracking history returned for an identifier."""

    carrier: str  # display form, e.g. "UPS"
    tracking_number: str = Field(alias="trackingNumber")
    status: str
    estimated_delivery: str = Field(alias="estimatedDelivery")

    # Oldest first
    activity: list[ActivityEvent] = Field(min_length=1)

    class Config:
        populate_by_name = True

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using wire names."""
        return self.model_dump(mode="json", by_alias=True)


class TrackRequest(BaseModel):
    """Body of a tracking lookup request."""

    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")

    class Config:
        populate_by_name = True


# ===== Live presence =====

class LiveUser(BaseModel):
    """A connected viewer who has joined."""

    id: str  # connection id
    username: str
    avatar: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class UnknownSender(BaseModel):
    """Stands in for a chat sender that has not joined yet."""

    username: str = "Unknown"
    avatar: str = ""


class ChatMessage(BaseModel):
    """Chat message relayed to every connection. Never persisted."""

    user: Union[LiveUser, UnknownSender]
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LocationPayload(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ClientEventType(str, Enum):
    """Events a viewer sends to the server."""
    JOIN = "join"
    LOCATION_UPDATE = "locationUpdate"
    CHAT_MESSAGE = "chatMessage"


class ServerEventType(str, Enum):
    """Events the server pushes to viewers."""
    CURRENT_USERS = "currentUsers"
    USER_JOINED = "userJoined"
    LOCATION_RECEIVED = "locationReceived"
    CHAT_MESSAGE_RECEIVED = "chatMessageReceived"
    USER_DISCONNECTED = "userDisconnected"
    TRACKING_UPDATE = "trackingUpdate"
    ERROR = "error"


class ClientEvent(BaseModel):
    """Envelope for an inbound connection event."""

    event_type: ClientEventType = Field(alias="eventType")
    payload: Any = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_raw(cls, raw: Union[str, bytes, dict]) -> "ClientEvent":
        """Parse a raw frame, raising ValidationError on anything malformed."""
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            return cls.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
            raise ValidationError(f"Malformed event: {e}") from e


class ServerEvent(BaseModel):
    """Envelope for an outbound connection event."""

    event_type: ServerEventType = Field(alias="eventType")
    payload: Any = None

    class Config:
        populate_by_name = True

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
