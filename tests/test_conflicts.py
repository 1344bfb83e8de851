from __future__ import annotations

from datetime import date

from app.models.enums import AppointmentStatus
from app.schemas.appointment import AppointmentSlot, ConflictProposal
from app.services.conflicts import (
    find_all_conflicting_appointments,
    find_conflicting_appointments,
    get_conflict_message,
    has_conflict,
)

DAY = date(2024, 6, 10)


def _slot(
    slot_id: str,
    start: str,
    end: str,
    *,
    professional_id: str = "P1",
    day: date = DAY,
    status: AppointmentStatus = AppointmentStatus.scheduled,
    patient_name: str | None = None,
) -> AppointmentSlot:
    return AppointmentSlot(
        id=slot_id,
        date=day,
        start_time=start,
        end_time=end,
        professional_id=professional_id,
        status=status,
        patient_name=patient_name,
    )


def _proposal(start: str = "14:00", duration: int = 30, **kwargs) -> ConflictProposal:
    return ConflictProposal(
        date=kwargs.pop("day", DAY),
        start_time=start,
        duration_minutes=duration,
        professional_id=kwargs.pop("professional_id", "P1"),
        **kwargs,
    )


def test_overlapping_active_slot_is_a_conflict() -> None:
    existing = [_slot("a1", "14:15", "14:45", patient_name="Maria Silva")]

    assert has_conflict(existing, _proposal()) is True
    message = get_conflict_message(find_conflicting_appointments(existing, _proposal()))
    assert "Maria Silva" in message
    assert "14:15 - 14:45" in message


def test_cancelled_slot_does_not_block() -> None:
    existing = [_slot("a1", "14:15", "14:45", status=AppointmentStatus.cancelled)]

    assert has_conflict(existing, _proposal()) is False


def test_inactive_statuses_never_appear_in_conflicts() -> None:
    existing = [
        _slot("c1", "14:00", "14:30", status=AppointmentStatus.cancelled),
        _slot("n1", "14:00", "14:30", status=AppointmentStatus.no_show),
    ]

    assert find_conflicting_appointments(existing, _proposal()) == []


def test_every_active_status_blocks() -> None:
    for status in (
        AppointmentStatus.scheduled,
        AppointmentStatus.confirmed,
        AppointmentStatus.in_progress,
        AppointmentStatus.completed,
    ):
        assert has_conflict([_slot("a1", "14:00", "14:30", status=status)], _proposal()), status


def test_editing_an_appointment_ignores_itself() -> None:
    existing = [_slot("a1", "14:00", "14:30")]

    assert find_conflicting_appointments(existing, _proposal(exclude_id="a1")) == []
    assert has_conflict(existing, _proposal(exclude_id="other")) is True


def test_other_professionals_and_days_are_isolated() -> None:
    existing = [
        _slot("p2", "14:00", "14:30", professional_id="P2"),
        _slot("tomorrow", "14:00", "14:30", day=date(2024, 6, 11)),
    ]

    assert find_conflicting_appointments(existing, _proposal()) == []


def test_back_to_back_slots_do_not_conflict() -> None:
    existing = [_slot("before", "13:30", "14:00"), _slot("after", "14:30", "15:00")]

    assert has_conflict(existing, _proposal()) is False


def test_returns_every_overlapping_slot() -> None:
    existing = [_slot("a1", "13:45", "14:10"), _slot("a2", "14:20", "14:40"), _slot("a3", "15:00", "15:30")]

    conflicts = find_conflicting_appointments(existing, _proposal())

    assert [slot.id for slot in conflicts] == ["a1", "a2"]
    assert get_conflict_message(conflicts) == "Conflito de horário com 2 agendamentos existentes"


def test_conflict_message_prefers_given_patient_names() -> None:
    conflicts = [_slot("a1", "14:15", "14:45", patient_name="Nome Antigo")]

    assert get_conflict_message(conflicts, {"a1": "João Pereira"}) == (
        "Conflito de horário com João Pereira (14:15 - 14:45)"
    )
    assert get_conflict_message([]) == ""


def test_slot_end_time_derived_from_duration() -> None:
    slot = AppointmentSlot(id="d1", date=DAY, start_time="14:10", professional_id="P1", duration_minutes=20)

    assert slot.end_time == "14:30"
    assert has_conflict([slot], _proposal()) is True


def test_audit_flags_both_sides_of_each_overlap() -> None:
    appointments = [
        _slot("a1", "09:00", "09:30"),
        _slot("a2", "09:15", "09:45"),
        _slot("a3", "09:45", "10:15"),
        _slot("a4", "11:00", "11:30"),
    ]

    assert find_all_conflicting_appointments(appointments) == {"a1", "a2"}


def test_audit_groups_by_day_and_professional() -> None:
    appointments = [
        _slot("p1", "09:00", "10:00", professional_id="P1"),
        _slot("p2", "09:00", "10:00", professional_id="P2"),
        _slot("other-day", "09:00", "10:00", day=date(2024, 6, 11)),
    ]

    assert find_all_conflicting_appointments(appointments) == set()


def test_audit_skips_inactive_slots() -> None:
    appointments = [
        _slot("a1", "09:00", "10:00"),
        _slot("a2", "09:00", "10:00", status=AppointmentStatus.cancelled),
        _slot("a3", "09:30", "10:30", status=AppointmentStatus.no_show),
    ]

    assert find_all_conflicting_appointments(appointments) == set()
