from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.schemas.appointment import AppointmentSlot


class NotFoundError(ValueError):
    pass


class AppointmentNotFoundError(NotFoundError):
    def __init__(self, appointment_id: str) -> None:
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class WaitingListEntryNotFoundError(NotFoundError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Waiting list entry {entry_id} not found")
        self.entry_id = entry_id


class AppointmentConflictError(ValueError):
    def __init__(self, message: str, conflicts: list[AppointmentSlot]) -> None:
        super().__init__(message)
        self.conflicts = conflicts


class InvalidStatusTransitionError(ValueError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot change status from {current} to {target}")
        self.current = current
        self.target = target
