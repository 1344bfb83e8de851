from __future__ import annotations

from datetime import date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.appointment import Appointment
from app.models.clinic import Clinic, Professional
from app.models.enums import OFFERABLE_NOTIFICATION_STATUSES, AppointmentStatus, NotificationStatus
from app.models.patient import Patient
from app.models.waiting_list import WaitingListEntry
from app.schemas.appointment import AppointmentSlot


def to_slot(appointment: Appointment) -> AppointmentSlot:
    return AppointmentSlot(
        id=appointment.id,
        date=appointment.appointment_date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        professional_id=appointment.professional_id,
        status=appointment.status,
        duration_minutes=appointment.duration_minutes,
        patient_id=appointment.patient_id,
        patient_name=appointment.patient.name if appointment.patient else None,
    )


class AppointmentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, appointment_id: str) -> Appointment | None:
        return self.session.get(Appointment, appointment_id)

    def create(
        self,
        *,
        clinic_id: str,
        patient_id: str,
        professional_id: str,
        appointment_date: date,
        start_time: str,
        end_time: str,
        duration_minutes: int | None,
        notes: str | None = None,
    ) -> Appointment:
        appointment = Appointment(
            clinic_id=clinic_id,
            patient_id=patient_id,
            professional_id=professional_id,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration_minutes,
            status=AppointmentStatus.scheduled,
            notes=notes,
        )
        self.session.add(appointment)
        self.session.flush()
        return appointment

    def slots_for_day(
        self,
        *,
        clinic_id: str,
        day: date,
        professional_id: str | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[AppointmentSlot]:
        stmt = select(Appointment).where(Appointment.clinic_id == clinic_id, Appointment.appointment_date == day)
        if professional_id:
            stmt = stmt.where(Appointment.professional_id == professional_id)
        if status:
            stmt = stmt.where(Appointment.status == status)
        stmt = stmt.order_by(Appointment.start_time)
        return [to_slot(appointment) for appointment in self.session.scalars(stmt).unique()]


class WaitingListRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, entry_id: str) -> WaitingListEntry | None:
        return self.session.get(WaitingListEntry, entry_id)

    def create(
        self,
        *,
        clinic_id: str,
        patient_id: str,
        professional_id: str | None,
        preferred_times: list[str] | None = None,
        preferred_dates: list[date] | None = None,
        notes: str | None = None,
    ) -> WaitingListEntry:
        entry = WaitingListEntry(
            clinic_id=clinic_id,
            patient_id=patient_id,
            professional_id=professional_id,
            preferred_times=preferred_times,
            preferred_dates=[day.isoformat() for day in preferred_dates] if preferred_dates else None,
            notes=notes,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def active_entries(
        self,
        *,
        clinic_id: str,
        statuses: frozenset[NotificationStatus] | None = None,
    ) -> list[WaitingListEntry]:
        """Active entries for a clinic, oldest first."""
        stmt = select(WaitingListEntry).where(
            WaitingListEntry.clinic_id == clinic_id,
            WaitingListEntry.is_active.is_(True),
        )
        if statuses:
            stmt = stmt.where(WaitingListEntry.notification_status.in_(list(statuses)))
        stmt = stmt.order_by(WaitingListEntry.created_at.asc())
        return list(self.session.scalars(stmt).unique())

    def offerable_queue(self, *, clinic_id: str) -> list[WaitingListEntry]:
        return self.active_entries(clinic_id=clinic_id, statuses=OFFERABLE_NOTIFICATION_STATUSES)

    def update_entry(self, *, entry_id: str, **fields: Any) -> None:
        """Partial update: only the given columns are written."""
        self.session.execute(
            update(WaitingListEntry).where(WaitingListEntry.id == entry_id).values(**fields),
            execution_options={"synchronize_session": False},
        )
        self._refresh(entry_id)

    def claim(self, *, entry_id: str, **fields: Any) -> bool:
        """Mark an entry notified only if it is still offerable.

        Returns False when a concurrent promotion got there first.
        """
        result = self.session.execute(
            update(WaitingListEntry)
            .where(
                WaitingListEntry.id == entry_id,
                WaitingListEntry.is_active.is_(True),
                WaitingListEntry.notification_status.in_(list(OFFERABLE_NOTIFICATION_STATUSES)),
            )
            .values(notification_status=NotificationStatus.notified, **fields),
            execution_options={"synchronize_session": False},
        )
        claimed = result.rowcount == 1
        if claimed:
            self._refresh(entry_id)
        else:
            logger.info("Waiting list entry {entry_id} already claimed", entry_id=entry_id)
        return claimed

    def _refresh(self, entry_id: str) -> None:
        # Bulk UPDATEs bypass the identity map
        self.session.get(WaitingListEntry, entry_id, populate_existing=True)

    def stale_offers(self, *, notified_before: datetime) -> list[WaitingListEntry]:
        stmt = select(WaitingListEntry).where(
            WaitingListEntry.is_active.is_(True),
            WaitingListEntry.notification_status == NotificationStatus.notified,
            WaitingListEntry.notified_at < notified_before,
        )
        return list(self.session.scalars(stmt).unique())


class DirectoryRepository:
    """Lookups for the clinic, patient and professional records other services reference."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_clinic(self, *, clinic_id: str) -> Clinic | None:
        return self.session.get(Clinic, clinic_id)

    def get_patient(self, *, patient_id: str) -> Patient | None:
        return self.session.get(Patient, patient_id)

    def get_professional(self, *, professional_id: str) -> Professional | None:
        return self.session.get(Professional, professional_id)
