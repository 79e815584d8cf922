"""
Shared data models используемые всеми сервисами
"""

from .message import (
    Channel,
    InboundEvent,
    ListRow,
    ListSection,
    SendText,
    SendButtons,
    SendList,
    SendLocation,
    Escalate,
    OutboundAction,
    SendResult,
    render_as_text,
    STALE_FLOW,
    MISSING_TO,
    SEND_FAILED,
)
from .session import (
    Session,
    SessionState,
    WaitingFor,
    BookingDraft,
    KnownUser,
    AvailabilityCache,
    PendingConfirmation,
    TranscriptTurn,
    SESSION_SCHEMA_VERSION,
    migrate_session_payload,
)
from .booking import (
    Slot,
    BookingOption,
    UserProfile,
    BookingRequest,
    ConfirmedBooking,
    merge_bookings,
    normalize_clock,
    to_backend_date,
)

__all__ = [
    "Channel",
    "InboundEvent",
    "ListRow",
    "ListSection",
    "SendText",
    "SendButtons",
    "SendList",
    "SendLocation",
    "Escalate",
    "OutboundAction",
    "SendResult",
    "render_as_text",
    "STALE_FLOW",
    "MISSING_TO",
    "SEND_FAILED",
    "Session",
    "SessionState",
    "WaitingFor",
    "BookingDraft",
    "KnownUser",
    "AvailabilityCache",
    "PendingConfirmation",
    "TranscriptTurn",
    "SESSION_SCHEMA_VERSION",
    "migrate_session_payload",
    "Slot",
    "BookingOption",
    "UserProfile",
    "BookingRequest",
    "ConfirmedBooking",
    "merge_bookings",
    "normalize_clock",
    "to_backend_date",
]
