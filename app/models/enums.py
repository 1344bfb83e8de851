from __future__ import annotations

import enum


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


# Never block a booking and never get flagged by the audit.
INACTIVE_APPOINTMENT_STATUSES = frozenset({AppointmentStatus.cancelled, AppointmentStatus.no_show})


class NotificationStatus(str, enum.Enum):
    pending = "pending"
    notified = "notified"
    declined = "declined"
    confirmed = "confirmed"
    expired = "expired"


# An entry in any other state is either mid-offer or finished.
OFFERABLE_NOTIFICATION_STATUSES = frozenset({NotificationStatus.pending, NotificationStatus.declined})
