from __future__ import annotations

import datetime as dt
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from app.models.enums import AppointmentStatus
from app.schemas.waiting_list import NotifyResult
from app.utils.time import calculate_end_time, ends_same_day, format_clock_time, format_short_time, time_to_minutes

# Accepts HH:MM or HH:MM:SS, stores HH:MM
ClockTime = Annotated[str, AfterValidator(format_clock_time)]
# End times may reach 24:00
EndTime = Annotated[str, AfterValidator(format_short_time)]


class AppointmentSlot(BaseModel):
    """One occupancy of a professional's calendar, as seen by the conflict detector."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    date: dt.date = Field(alias="appointment_date")
    start_time: ClockTime
    end_time: EndTime | None = None
    professional_id: str
    status: AppointmentStatus = AppointmentStatus.scheduled
    duration_minutes: int | None = None
    patient_id: str | None = None
    patient_name: str | None = None

    @model_validator(mode="after")
    def _derive_end_time(self) -> AppointmentSlot:
        # A stored end_time wins over the duration when both are present.
        if self.end_time is None:
            if self.duration_minutes is None:
                raise ValueError("end_time or duration_minutes is required")
            self.end_time = calculate_end_time(self.start_time, self.duration_minutes)
        if time_to_minutes(self.end_time) <= time_to_minutes(self.start_time):
            raise ValueError(f"end_time {self.end_time} must be after start_time {self.start_time}")
        return self


class ConflictProposal(BaseModel):
    date: dt.date
    start_time: ClockTime
    duration_minutes: int = Field(gt=0)
    professional_id: str
    exclude_id: str | None = None

    @property
    def end_time(self) -> str:
        return calculate_end_time(self.start_time, self.duration_minutes)


class ConflictCheckPayload(ConflictProposal):
    clinic_id: str


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicts: list[AppointmentSlot] = Field(default_factory=list)
    message: str = ""


class ConflictAuditResponse(BaseModel):
    clinic_id: str
    date: dt.date
    conflicting_ids: list[str] = Field(default_factory=list)


class BookAppointmentPayload(BaseModel):
    clinic_id: str
    patient_id: str
    professional_id: str
    date: dt.date
    start_time: ClockTime
    duration_minutes: int = Field(default=30, gt=0)
    notes: str | None = None

    @field_validator("duration_minutes")
    @classmethod
    def _ends_same_day(cls, value: int, info: ValidationInfo) -> int:
        start = info.data.get("start_time")
        if start and not ends_same_day(start, value):
            raise ValueError("appointment must end on the same day")
        return value


class RescheduleAppointmentPayload(BaseModel):
    date: dt.date
    start_time: ClockTime
    duration_minutes: int | None = Field(default=None, gt=0)
    professional_id: str | None = None

    @field_validator("duration_minutes")
    @classmethod
    def _ends_same_day(cls, value: int | None, info: ValidationInfo) -> int | None:
        # Without a duration the stored one is checked when rescheduling
        start = info.data.get("start_time")
        if value and start and not ends_same_day(start, value):
            raise ValueError("appointment must end on the same day")
        return value


class StatusTransitionPayload(BaseModel):
    status: AppointmentStatus

    @field_validator("status")
    @classmethod
    def _not_cancellation(cls, value: AppointmentStatus) -> AppointmentStatus:
        if value in {AppointmentStatus.cancelled, AppointmentStatus.no_show}:
            raise ValueError("use the cancel or no-show endpoints for this status")
        return value


class CancelAppointmentPayload(BaseModel):
    reason: str | None = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    clinic_id: str
    patient_id: str
    professional_id: str
    appointment_date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int | None = None
    status: AppointmentStatus
    notes: str | None = None
    cancellation_reason: str | None = None


class CancelAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    waiting_list: NotifyResult | None = None
