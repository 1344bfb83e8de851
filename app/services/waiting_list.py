from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import InvalidStatusTransitionError, WaitingListEntryNotFoundError
from app.models.enums import NotificationStatus
from app.models.waiting_list import WaitingListEntry
from app.schemas.waiting_list import (
    Failed,
    FreedSlot,
    Notified,
    NotifyResult,
    Skipped,
    WaitingListEntryCreate,
    WaitingListEntryResponse,
)
from app.services.repositories import DirectoryRepository, WaitingListRepository
from app.services.whatsapp import Messenger
from app.utils.time import format_long_date, format_short_time

NO_PHONE_ERROR = "Paciente sem telefone"

_SCHEDULABLE_STATUSES = {NotificationStatus.pending, NotificationStatus.notified, NotificationStatus.declined}


def build_offer_message(*, patient_name: str, slot: FreedSlot, clinic_name: str | None) -> str:
    first_name = patient_name.split()[0] if patient_name.strip() else patient_name
    message = (
        f"Olá {first_name}! 👋\n\n"
        f"Surgiu uma vaga com {slot.professional_name} "
        f"para {format_long_date(slot.date)}, às {format_short_time(slot.start_time)}.\n\n"
        "Responda esta mensagem para confirmar o agendamento."
    )
    if clinic_name:
        message += f"\n\nClínica: {clinic_name}"
    return message


def build_availability_message(*, patient_name: str, clinic_name: str | None) -> str:
    first_name = patient_name.split()[0] if patient_name.strip() else patient_name
    message = (
        f"Olá {first_name}! 👋\n\n"
        "Temos uma vaga disponível para você! Entre em contato conosco para agendar sua consulta."
    )
    if clinic_name:
        message += f"\n\nClínica: {clinic_name}"
    return message


def is_compatible(entry: WaitingListEntry, slot: FreedSlot) -> bool:
    return entry.professional_id is None or entry.professional_id == slot.professional_id


def to_response(entry: WaitingListEntry) -> WaitingListEntryResponse:
    response = WaitingListEntryResponse.model_validate(entry)
    if entry.patient:
        response.patient_name = entry.patient.name
        response.patient_phone = entry.patient.phone
    if entry.professional:
        response.professional_name = entry.professional.name
    return response


class WaitingListService:
    def __init__(self, *, session: Session, messenger: Messenger) -> None:
        self.session = session
        self.messenger = messenger
        self.repository = WaitingListRepository(session)
        self.settings = get_settings()

    async def notify_next(self, *, clinic_id: str, clinic_name: str | None, slot: FreedSlot) -> NotifyResult:
        """Offer a freed slot to the longest-waiting compatible patient.

        Never raises: query and delivery errors come back as ``Failed``.
        """
        try:
            queue = self.repository.offerable_queue(clinic_id=clinic_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to load waiting list for clinic {clinic_id}", clinic_id=clinic_id)
            return Failed(error=str(exc), waiting_count=0)

        if not queue:
            return Skipped(reason="empty_queue", waiting_count=0)

        compatible = [entry for entry in queue if is_compatible(entry, slot)]
        if not compatible:
            # Report everyone waiting, not just this professional's queue
            return Skipped(reason="no_compatible_entry", waiting_count=len(queue))

        waiting_count = len(compatible)
        for entry in compatible:
            patient_name = entry.patient.name
            if not entry.patient.phone:
                logger.info("First in line {entry_id} has no phone; skipping offer", entry_id=entry.id)
                return Skipped(
                    reason="no_phone",
                    error=NO_PHONE_ERROR,
                    patient_name=patient_name,
                    waiting_count=waiting_count,
                )

            try:
                result = await self._offer(entry=entry, clinic_id=clinic_id, clinic_name=clinic_name, slot=slot)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to offer slot to entry {entry_id}", entry_id=entry.id)
                self.session.rollback()
                return Failed(error=str(exc), patient_name=patient_name, waiting_count=waiting_count, entry_id=entry.id)

            if result is None:
                continue
            success, error = result
            if success:
                logger.info(
                    "Slot {date} {time} offered to {patient} ({count} waiting)",
                    date=slot.date,
                    time=slot.start_time,
                    patient=patient_name,
                    count=waiting_count,
                )
                return Notified(entry_id=entry.id, patient_name=patient_name, waiting_count=waiting_count)
            return Failed(
                error=error or "Falha ao enviar mensagem",
                patient_name=patient_name,
                waiting_count=waiting_count,
                entry_id=entry.id,
            )

        # Every compatible entry was claimed by concurrent promotions
        return Skipped(reason="no_compatible_entry", waiting_count=waiting_count)

    async def _offer(
        self,
        *,
        entry: WaitingListEntry,
        clinic_id: str,
        clinic_name: str | None,
        slot: FreedSlot,
    ) -> tuple[bool, str | None] | None:
        """Claim, send, and revert the claim on a failed send. None means the entry was taken."""
        now = datetime.now(timezone.utc)
        offer_fields = {
            "offered_appointment_date": slot.date,
            "offered_appointment_time": slot.start_time,
            "offered_professional_id": slot.professional_id,
            "offered_professional_name": slot.professional_name,
        }
        claimed = self.repository.claim(entry_id=entry.id, notified_at=now, slot_offered_at=now, **offer_fields)
        # Nothing may stay uncommitted while the message is in flight
        self.session.commit()
        if not claimed:
            return None

        message = build_offer_message(patient_name=entry.patient.name, slot=slot, clinic_name=clinic_name)
        try:
            sent = await self.messenger.send_message(
                phone=entry.patient.phone,
                message=message,
                clinic_id=clinic_id,
                message_type="waiting_list",
            )
            success, error = sent.success, sent.error
        except Exception as exc:  # noqa: BLE001
            logger.warning("Messenger raised for entry {entry_id}: {error}", entry_id=entry.id, error=exc)
            success, error = False, str(exc)

        if not success:
            # Keep the attempted slot for auditing but leave the entry re-offerable
            self.repository.update_entry(
                entry_id=entry.id,
                notification_status=NotificationStatus.pending,
                notified_at=None,
                slot_offered_at=None,
                **offer_fields,
            )
        self.session.commit()
        return success, error

    async def notify_entry(
        self,
        *,
        entry_id: str,
        clinic_name: str | None,
        slot: FreedSlot | None = None,
    ) -> NotifyResult:
        """Message one chosen patient regardless of queue position.

        With a slot the entry records the offer like ``notify_next`` does;
        without one a generic availability message is sent and only
        ``notified_at`` is stamped.
        """
        entry = self._require(entry_id)
        if not entry.is_active:
            raise InvalidStatusTransitionError(entry.notification_status.value, NotificationStatus.notified.value)

        if clinic_name is None:
            clinic = DirectoryRepository(self.session).get_clinic(clinic_id=entry.clinic_id)
            clinic_name = clinic.name if clinic else None
        patient_name = entry.patient.name
        waiting_count = len(self.repository.offerable_queue(clinic_id=entry.clinic_id))
        if not entry.patient.phone:
            return Skipped(reason="no_phone", error=NO_PHONE_ERROR, patient_name=patient_name, waiting_count=waiting_count)

        if slot:
            message = build_offer_message(patient_name=patient_name, slot=slot, clinic_name=clinic_name)
        else:
            message = build_availability_message(patient_name=patient_name, clinic_name=clinic_name)
        try:
            sent = await self.messenger.send_message(
                phone=entry.patient.phone,
                message=message,
                clinic_id=entry.clinic_id,
                message_type="waiting_list",
            )
            success, error = sent.success, sent.error
        except Exception as exc:  # noqa: BLE001
            logger.warning("Messenger raised for entry {entry_id}: {error}", entry_id=entry.id, error=exc)
            success, error = False, str(exc)

        if not success:
            self.session.commit()
            return Failed(
                error=error or "Falha ao enviar mensagem",
                patient_name=patient_name,
                waiting_count=waiting_count,
                entry_id=entry.id,
            )

        now = datetime.now(timezone.utc)
        fields: dict = {"notified_at": now}
        if slot:
            fields.update(
                notification_status=NotificationStatus.notified,
                slot_offered_at=now,
                offered_appointment_date=slot.date,
                offered_appointment_time=slot.start_time,
                offered_professional_id=slot.professional_id,
                offered_professional_name=slot.professional_name,
            )
        self.repository.update_entry(entry_id=entry.id, **fields)
        self.session.commit()
        logger.info("Waiting list entry {entry_id} notified manually", entry_id=entry.id)
        return Notified(entry_id=entry.id, patient_name=patient_name, waiting_count=waiting_count)

    def add_entry(self, payload: WaitingListEntryCreate) -> WaitingListEntry:
        entry = self.repository.create(
            clinic_id=payload.clinic_id,
            patient_id=payload.patient_id,
            professional_id=payload.professional_id,
            preferred_times=payload.preferred_times,
            preferred_dates=payload.preferred_dates,
            notes=payload.notes,
        )
        logger.info("Patient {patient_id} added to waiting list", patient_id=payload.patient_id)
        return entry

    def list_entries(self, *, clinic_id: str) -> list[WaitingListEntry]:
        return self.repository.active_entries(clinic_id=clinic_id)

    def remove_entry(self, *, entry_id: str) -> WaitingListEntry:
        entry = self._require(entry_id)
        fields: dict = {"is_active": False}
        if entry.notification_status != NotificationStatus.confirmed:
            fields["notification_status"] = NotificationStatus.expired
        self.repository.update_entry(entry_id=entry_id, **fields)
        return entry

    def confirm_offer(self, *, entry_id: str) -> WaitingListEntry:
        """Move an active entry to scheduling, whether or not it holds an offer."""
        entry = self._require(entry_id)
        if not entry.is_active or entry.notification_status not in _SCHEDULABLE_STATUSES:
            raise InvalidStatusTransitionError(entry.notification_status.value, NotificationStatus.confirmed.value)
        # Booking happens through the agenda; the entry leaves the queue
        self.repository.update_entry(
            entry_id=entry_id,
            notification_status=NotificationStatus.confirmed,
            is_active=False,
        )
        return entry

    def decline_offer(self, *, entry_id: str) -> WaitingListEntry:
        entry = self._require_notified(entry_id, NotificationStatus.declined)
        self.repository.update_entry(entry_id=entry_id, notification_status=NotificationStatus.declined)
        return entry

    def expire_stale_offers(self, *, now: datetime | None = None) -> int:
        """Return unanswered offers older than the configured TTL to the queue."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.settings.waiting_list_offer_ttl_hours)
        stale = self.repository.stale_offers(notified_before=cutoff)
        for entry in stale:
            self.repository.update_entry(
                entry_id=entry.id,
                notification_status=NotificationStatus.pending,
                notified_at=None,
                slot_offered_at=None,
            )
            logger.info("Waiting list offer {entry_id} expired; back in queue", entry_id=entry.id)
        return len(stale)

    def _require(self, entry_id: str) -> WaitingListEntry:
        entry = self.repository.get(entry_id=entry_id)
        if not entry:
            raise WaitingListEntryNotFoundError(entry_id)
        return entry

    def _require_notified(self, entry_id: str, target: NotificationStatus) -> WaitingListEntry:
        entry = self._require(entry_id)
        if entry.notification_status != NotificationStatus.notified:
            raise InvalidStatusTransitionError(entry.notification_status.value, target.value)
        return entry
