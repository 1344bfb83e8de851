from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field, field_validator

from app.models.enums import NotificationStatus
from app.utils.time import format_clock_time

PreferredPeriod = Literal["Manhã", "Tarde", "Noite"]


class FreedSlot(BaseModel):
    date: dt.date
    start_time: Annotated[str, AfterValidator(format_clock_time)]
    professional_id: str
    professional_name: str


class NotifyNextPayload(BaseModel):
    clinic_id: str
    clinic_name: str | None = None
    slot: FreedSlot


class NotifyEntryPayload(BaseModel):
    clinic_name: str | None = None
    slot: FreedSlot | None = None


class _NotifyOutcome(BaseModel):
    waiting_count: int = 0
    patient_name: str | None = None
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def notified(self) -> bool:
        return isinstance(self, Notified)


class Notified(_NotifyOutcome):
    outcome: Literal["notified"] = "notified"
    entry_id: str


SkipReason = Literal["empty_queue", "no_compatible_entry", "no_phone"]


class Skipped(_NotifyOutcome):
    """Nothing to do: an expected outcome, not a failure."""

    outcome: Literal["skipped"] = "skipped"
    reason: SkipReason


class Failed(_NotifyOutcome):
    outcome: Literal["failed"] = "failed"
    error: str
    entry_id: str | None = None


NotifyResult = Annotated[Union[Notified, Skipped, Failed], Field(discriminator="outcome")]


class WaitingListEntryCreate(BaseModel):
    clinic_id: str
    patient_id: str
    professional_id: str | None = None
    preferred_times: list[PreferredPeriod] | None = None
    preferred_dates: list[dt.date] | None = None
    notes: str | None = None

    @field_validator("professional_id")
    @classmethod
    def _any_professional(cls, value: str | None) -> str | None:
        # The booking form posts "none" for the "any professional" option
        if not value or value.strip().lower() == "none":
            return None
        return value.strip()

    @field_validator("preferred_times")
    @classmethod
    def _unique_periods(cls, value: list[str] | None) -> list[str] | None:
        return list(dict.fromkeys(value)) if value else None

    @field_validator("preferred_dates")
    @classmethod
    def _sorted_dates(cls, value: list[dt.date] | None) -> list[dt.date] | None:
        return sorted(set(value)) if value else None


class WaitingListEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    clinic_id: str
    patient_id: str
    patient_name: str | None = None
    patient_phone: str | None = None
    professional_id: str | None = None
    professional_name: str | None = None
    preferred_times: list[str] | None = None
    preferred_dates: list[dt.date] | None = None
    notes: str | None = None
    is_active: bool
    created_at: dt.datetime
    notification_status: NotificationStatus
    notified_at: dt.datetime | None = None
    offered_appointment_date: dt.date | None = None
    offered_appointment_time: str | None = None
    offered_professional_id: str | None = None
    offered_professional_name: str | None = None
    slot_offered_at: dt.datetime | None = None


class ExpireOffersResponse(BaseModel):
    expired: int
