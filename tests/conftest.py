from __future__ import annotations

import os

# Must be set before app.core.config is first imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("API_TOKEN", None)

import asyncio  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import appointment, clinic, message_log, patient, waiting_list  # noqa: E402,F401
from app.models.base import Base  # noqa: E402
from app.models.clinic import Clinic, Professional  # noqa: E402
from app.models.patient import Patient  # noqa: E402
from app.models.waiting_list import WaitingListEntry  # noqa: E402
from app.schemas.messaging import SendResult  # noqa: E402

BASE_TIME = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


class FakeMessenger:
    """Records every send and answers with a fixed result."""

    def __init__(self, result: SendResult | None = None, exc: Exception | None = None, delay: float = 0) -> None:
        self.result = result or SendResult(success=True, message_id="msg-1")
        self.exc = exc
        self.delay = delay
        self.calls: list[dict] = []

    async def send_message(self, *, phone, message, clinic_id, message_type="custom"):
        self.calls.append({"phone": phone, "message": message, "clinic_id": clinic_id, "message_type": message_type})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return self.result


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


def seed_clinic(session) -> Clinic:
    """One clinic, two professionals and a handful of patients."""
    clinic_row = Clinic(id="clinic-1", name="Clínica Central")
    session.add(clinic_row)
    session.add_all(
        [
            Professional(id="P1", clinic_id="clinic-1", name="Dra. Ana Souza"),
            Professional(id="P2", clinic_id="clinic-1", name="Dr. Bruno Lima"),
            Patient(id="pat-a", clinic_id="clinic-1", name="Alice Martins", phone="(11) 98765-4321"),
            Patient(id="pat-b", clinic_id="clinic-1", name="Bruno Costa", phone="11912345678"),
            Patient(id="pat-c", clinic_id="clinic-1", name="Carla Dias", phone="11955554444"),
            Patient(id="pat-nophone", clinic_id="clinic-1", name="Davi Rocha", phone=None),
        ]
    )
    session.commit()
    return clinic_row


@pytest.fixture()
def seed(session):
    return seed_clinic(session)


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a real SQLite file, each with its own connection and lock."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'clinic.db'}",
        connect_args={"check_same_thread": False, "timeout": 1},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def add_entry(session):
    def _add(entry_id: str, patient_id: str, professional_id: str | None, minutes: int, **fields) -> WaitingListEntry:
        entry = WaitingListEntry(
            id=entry_id,
            clinic_id="clinic-1",
            patient_id=patient_id,
            professional_id=professional_id,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            **fields,
        )
        session.add(entry)
        session.commit()
        return entry

    return _add
