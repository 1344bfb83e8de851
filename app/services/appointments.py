from __future__ import annotations

from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from app.core.errors import AppointmentConflictError, AppointmentNotFoundError, InvalidStatusTransitionError
from app.models.appointment import Appointment
from app.models.enums import AppointmentStatus
from app.schemas.appointment import (
    AppointmentSlot,
    BookAppointmentPayload,
    ConflictProposal,
    RescheduleAppointmentPayload,
)
from app.schemas.waiting_list import Failed, FreedSlot, NotifyResult
from app.services.conflicts import (
    find_all_conflicting_appointments,
    find_conflicting_appointments,
    get_conflict_message,
)
from app.services.repositories import AppointmentRepository, DirectoryRepository
from app.services.waiting_list import WaitingListService
from app.utils.time import calculate_end_time, ends_same_day, time_to_minutes

PROFESSIONAL_NOT_FOUND_ERROR = "Profissional não encontrado"

# Allowed forward moves; cancelled, no_show and completed are final.
_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.scheduled: {
        AppointmentStatus.confirmed,
        AppointmentStatus.in_progress,
        AppointmentStatus.cancelled,
        AppointmentStatus.no_show,
    },
    AppointmentStatus.confirmed: {
        AppointmentStatus.in_progress,
        AppointmentStatus.cancelled,
        AppointmentStatus.no_show,
    },
    AppointmentStatus.in_progress: {AppointmentStatus.completed},
    AppointmentStatus.completed: set(),
    AppointmentStatus.cancelled: set(),
    AppointmentStatus.no_show: set(),
}


class AppointmentManager:
    def __init__(
        self,
        *,
        session: Session,
        waiting_list_service: WaitingListService,
    ) -> None:
        self.session = session
        self.appointments = AppointmentRepository(session)
        self.directory = DirectoryRepository(session)
        self.waiting_list_service = waiting_list_service

    def check(self, *, clinic_id: str, proposal: ConflictProposal) -> list[AppointmentSlot]:
        existing = self.appointments.slots_for_day(
            clinic_id=clinic_id,
            day=proposal.date,
            professional_id=proposal.professional_id,
        )
        return find_conflicting_appointments(existing, proposal)

    def audit(self, *, clinic_id: str, day: date) -> set[str]:
        return find_all_conflicting_appointments(self.appointments.slots_for_day(clinic_id=clinic_id, day=day))

    def book(self, payload: BookAppointmentPayload) -> Appointment:
        proposal = ConflictProposal(
            date=payload.date,
            start_time=payload.start_time,
            duration_minutes=payload.duration_minutes,
            professional_id=payload.professional_id,
        )
        self._ensure_free(clinic_id=payload.clinic_id, proposal=proposal)

        appointment = self.appointments.create(
            clinic_id=payload.clinic_id,
            patient_id=payload.patient_id,
            professional_id=payload.professional_id,
            appointment_date=payload.date,
            start_time=payload.start_time,
            end_time=proposal.end_time,
            duration_minutes=payload.duration_minutes,
            notes=payload.notes,
        )
        logger.info(
            "Booked appointment {appointment_id} on {date} at {time}",
            appointment_id=appointment.id,
            date=payload.date,
            time=payload.start_time,
        )
        return appointment

    def reschedule(self, *, appointment_id: str, payload: RescheduleAppointmentPayload) -> Appointment:
        appointment = self._require(appointment_id)
        if appointment.status not in {AppointmentStatus.scheduled, AppointmentStatus.confirmed}:
            raise InvalidStatusTransitionError(appointment.status.value, "rescheduled")

        duration = payload.duration_minutes or appointment.duration_minutes or (
            time_to_minutes(appointment.end_time) - time_to_minutes(appointment.start_time)
        )
        if not ends_same_day(payload.start_time, duration):
            raise ValueError("appointment must end on the same day")
        proposal = ConflictProposal(
            date=payload.date,
            start_time=payload.start_time,
            duration_minutes=duration,
            professional_id=payload.professional_id or appointment.professional_id,
            exclude_id=appointment.id,
        )
        self._ensure_free(clinic_id=appointment.clinic_id, proposal=proposal)

        appointment.appointment_date = proposal.date
        appointment.start_time = proposal.start_time
        appointment.end_time = calculate_end_time(proposal.start_time, duration)
        appointment.duration_minutes = duration
        appointment.professional_id = proposal.professional_id
        self.session.flush()
        logger.info("Rescheduled appointment {appointment_id}", appointment_id=appointment.id)
        return appointment

    def transition(self, *, appointment_id: str, status: AppointmentStatus) -> Appointment:
        appointment = self._require(appointment_id)
        self._apply_status(appointment, status)
        self.session.flush()
        return appointment

    async def cancel(self, *, appointment_id: str, reason: str | None = None) -> tuple[Appointment, NotifyResult]:
        appointment = self._require(appointment_id)
        self._apply_status(appointment, AppointmentStatus.cancelled)
        appointment.cancellation_reason = reason
        appointment.cancelled_at = datetime.now(timezone.utc)
        # Committed before promotion so a slow send cannot hold the row
        self.session.commit()
        logger.info("Cancelled appointment {appointment_id}", appointment_id=appointment.id)
        return appointment, await self._promote(appointment)

    async def mark_no_show(self, *, appointment_id: str) -> tuple[Appointment, NotifyResult]:
        appointment = self._require(appointment_id)
        self._apply_status(appointment, AppointmentStatus.no_show)
        self.session.commit()
        logger.info("Appointment {appointment_id} marked as no-show", appointment_id=appointment.id)
        return appointment, await self._promote(appointment)

    async def _promote(self, appointment: Appointment) -> NotifyResult:
        # The status change stands whatever happens here.
        try:
            clinic = self.directory.get_clinic(clinic_id=appointment.clinic_id)
            professional = self.directory.get_professional(professional_id=appointment.professional_id)
            if professional is None:
                return Failed(error=PROFESSIONAL_NOT_FOUND_ERROR, waiting_count=0)
            slot = FreedSlot(
                date=appointment.appointment_date,
                start_time=appointment.start_time,
                professional_id=appointment.professional_id,
                professional_name=professional.name,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not build freed slot for {appointment_id}: {error}", appointment_id=appointment.id, error=exc)
            return Failed(error=str(exc), waiting_count=0)

        result = await self.waiting_list_service.notify_next(
            clinic_id=appointment.clinic_id,
            clinic_name=clinic.name if clinic else None,
            slot=slot,
        )
        logger.info(
            "Waiting list promotion for {appointment_id}: {outcome}",
            appointment_id=appointment.id,
            outcome=result.outcome,
        )
        return result

    def _ensure_free(self, *, clinic_id: str, proposal: ConflictProposal) -> None:
        conflicts = self.check(clinic_id=clinic_id, proposal=proposal)
        if conflicts:
            raise AppointmentConflictError(get_conflict_message(conflicts), conflicts)

    def _apply_status(self, appointment: Appointment, status: AppointmentStatus) -> None:
        if status not in _TRANSITIONS[appointment.status]:
            raise InvalidStatusTransitionError(appointment.status.value, status.value)
        appointment.status = status

    def _require(self, appointment_id: str) -> Appointment:
        appointment = self.appointments.get(appointment_id=appointment_id)
        if not appointment:
            raise AppointmentNotFoundError(appointment_id)
        return appointment
