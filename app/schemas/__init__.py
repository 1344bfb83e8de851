from .waiting_list import (
    Failed,
    FreedSlot,
    Notified,
    NotifyEntryPayload,
    NotifyNextPayload,
    NotifyResult,
    Skipped,
    WaitingListEntryCreate,
    WaitingListEntryResponse,
    ExpireOffersResponse,
)
from .appointment import (
    AppointmentSlot,
    AppointmentResponse,
    BookAppointmentPayload,
    CancelAppointmentPayload,
    CancelAppointmentResponse,
    ConflictAuditResponse,
    ConflictCheckPayload,
    ConflictCheckResponse,
    ConflictProposal,
    RescheduleAppointmentPayload,
    StatusTransitionPayload,
)
from .messaging import SendResult

__all__ = [
    "Failed",
    "FreedSlot",
    "Notified",
    "NotifyEntryPayload",
    "NotifyNextPayload",
    "NotifyResult",
    "Skipped",
    "WaitingListEntryCreate",
    "WaitingListEntryResponse",
    "ExpireOffersResponse",
    "AppointmentSlot",
    "AppointmentResponse",
    "BookAppointmentPayload",
    "CancelAppointmentPayload",
    "CancelAppointmentResponse",
    "ConflictAuditResponse",
    "ConflictCheckPayload",
    "ConflictCheckResponse",
    "ConflictProposal",
    "RescheduleAppointmentPayload",
    "StatusTransitionPayload",
    "SendResult",
]
