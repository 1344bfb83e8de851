from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_id, utcnow
from .clinic import Professional
from .enums import NotificationStatus
from .patient import Patient


class WaitingListEntry(Base):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinic.id"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patient.id"), nullable=False)
    # NULL means the patient accepts any professional
    professional_id: Mapped[str | None] = mapped_column(ForeignKey("professional.id"), nullable=True)
    # "Manhã" / "Tarde" / "Noite" period labels
    preferred_times: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    # ISO dates
    preferred_dates: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    notification_status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, name="notification_status", native_enum=False),
        nullable=False,
        default=NotificationStatus.pending,
    )
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    offered_appointment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    offered_appointment_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    offered_professional_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    offered_professional_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    slot_offered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    patient: Mapped[Patient] = relationship(lazy="joined")
    professional: Mapped[Professional | None] = relationship(lazy="joined")
