"""Double-booking detection for a professional's calendar.

Everything here is pure: callers fetch the relevant appointments first and
pass them in. Collections are small (a professional rarely has more than a
few dozen slots per day), so plain linear scans are used.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping

from app.models.enums import INACTIVE_APPOINTMENT_STATUSES
from app.schemas.appointment import AppointmentSlot, ConflictProposal
from app.utils.time import do_times_overlap


def _is_active(slot: AppointmentSlot) -> bool:
    return slot.status not in INACTIVE_APPOINTMENT_STATUSES


def find_conflicting_appointments(
    existing: Iterable[AppointmentSlot],
    proposal: ConflictProposal,
) -> list[AppointmentSlot]:
    proposal_end = proposal.end_time
    return [
        slot
        for slot in existing
        if slot.id != proposal.exclude_id
        and slot.date == proposal.date
        and slot.professional_id == proposal.professional_id
        and _is_active(slot)
        and do_times_overlap(proposal.start_time, proposal_end, slot.start_time, slot.end_time)
    ]


def has_conflict(existing: Iterable[AppointmentSlot], proposal: ConflictProposal) -> bool:
    return len(find_conflicting_appointments(existing, proposal)) > 0


def get_conflict_message(
    conflicts: list[AppointmentSlot],
    patient_names: Mapping[str, str] | None = None,
) -> str:
    if not conflicts:
        return ""
    if len(conflicts) == 1:
        slot = conflicts[0]
        name = (patient_names or {}).get(slot.id) or slot.patient_name or "outro paciente"
        return f"Conflito de horário com {name} ({slot.start_time} - {slot.end_time})"
    return f"Conflito de horário com {len(conflicts)} agendamentos existentes"


def find_all_conflicting_appointments(appointments: Iterable[AppointmentSlot]) -> set[str]:
    """Ids of every active slot that overlaps another one for the same professional and day."""
    groups: dict[tuple, list[AppointmentSlot]] = defaultdict(list)
    for slot in appointments:
        if _is_active(slot):
            groups[(slot.date, slot.professional_id)].append(slot)

    conflicting: set[str] = set()
    for slots in groups.values():
        for i, first in enumerate(slots):
            for second in slots[i + 1 :]:
                if do_times_overlap(first.start_time, first.end_time, second.start_time, second.end_time):
                    conflicting.add(first.id)
                    conflicting.add(second.id)
    return conflicting
