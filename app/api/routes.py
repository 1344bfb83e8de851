from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.schemas import (
    AppointmentResponse,
    BookAppointmentPayload,
    CancelAppointmentPayload,
    CancelAppointmentResponse,
    ConflictAuditResponse,
    ConflictCheckPayload,
    ConflictCheckResponse,
    ExpireOffersResponse,
    NotifyEntryPayload,
    NotifyNextPayload,
    NotifyResult,
    RescheduleAppointmentPayload,
    StatusTransitionPayload,
    WaitingListEntryCreate,
    WaitingListEntryResponse,
)
from app.services.appointments import AppointmentManager
from app.services.conflicts import get_conflict_message
from app.services.db import get_db
from app.services.repositories import DirectoryRepository
from app.services.waiting_list import WaitingListService, to_response
from app.services.whatsapp import WhatsAppService


def _authorize(x_api_token: str | None = Header(default=None, alias="x-api-token")) -> None:
    expected = get_settings().api_token
    if expected and x_api_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


router = APIRouter()
api = APIRouter(dependencies=[Depends(_authorize)])


def get_waiting_list_service(session: Session = Depends(get_db)) -> WaitingListService:
    return WaitingListService(session=session, messenger=WhatsAppService(session))


def get_appointment_manager(
    session: Session = Depends(get_db),
    waiting_list_service: WaitingListService = Depends(get_waiting_list_service),
) -> AppointmentManager:
    return AppointmentManager(session=session, waiting_list_service=waiting_list_service)


@api.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    payload: BookAppointmentPayload,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    return manager.book(payload)


@api.post("/appointments/conflicts/check", response_model=ConflictCheckResponse)
def check_conflicts(
    payload: ConflictCheckPayload,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    conflicts = manager.check(clinic_id=payload.clinic_id, proposal=payload)
    return ConflictCheckResponse(
        has_conflict=bool(conflicts),
        conflicts=conflicts,
        message=get_conflict_message(conflicts),
    )


@api.get("/appointments/conflicts", response_model=ConflictAuditResponse)
def audit_conflicts(
    clinic_id: str = Query(...),
    day: date = Query(..., alias="date"),
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    conflicting = manager.audit(clinic_id=clinic_id, day=day)
    return ConflictAuditResponse(clinic_id=clinic_id, date=day, conflicting_ids=sorted(conflicting))


@api.patch("/appointments/{appointment_id}", response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleAppointmentPayload,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    return manager.reschedule(appointment_id=appointment_id, payload=payload)


@api.post("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: str,
    payload: StatusTransitionPayload,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    return manager.transition(appointment_id=appointment_id, status=payload.status)


@api.post("/appointments/{appointment_id}/cancel", response_model=CancelAppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    payload: CancelAppointmentPayload | None = None,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    appointment, promotion = await manager.cancel(
        appointment_id=appointment_id,
        reason=payload.reason if payload else None,
    )
    return CancelAppointmentResponse(
        appointment=AppointmentResponse.model_validate(appointment),
        waiting_list=promotion,
    )


@api.post("/appointments/{appointment_id}/no-show", response_model=CancelAppointmentResponse)
async def mark_no_show(
    appointment_id: str,
    manager: AppointmentManager = Depends(get_appointment_manager),
):
    appointment, promotion = await manager.mark_no_show(appointment_id=appointment_id)
    return CancelAppointmentResponse(
        appointment=AppointmentResponse.model_validate(appointment),
        waiting_list=promotion,
    )


@api.get("/waiting-list", response_model=list[WaitingListEntryResponse])
def list_waiting_list(
    clinic_id: str = Query(...),
    service: WaitingListService = Depends(get_waiting_list_service),
):
    return [to_response(entry) for entry in service.list_entries(clinic_id=clinic_id)]


@api.post("/waiting-list", response_model=WaitingListEntryResponse, status_code=status.HTTP_201_CREATED)
def add_to_waiting_list(
    payload: WaitingListEntryCreate,
    service: WaitingListService = Depends(get_waiting_list_service),
):
    return to_response(service.add_entry(payload))


@api.delete("/waiting-list/{entry_id}", response_model=WaitingListEntryResponse)
def remove_from_waiting_list(
    entry_id: str,
    service: WaitingListService = Depends(get_waiting_list_service),
):
    return to_response(service.remove_entry(entry_id=entry_id))


@api.post("/waiting-list/{entry_id}/confirm", response_model=WaitingListEntryResponse)
def confirm_waiting_list_offer(
    entry_id: str,
    service: WaitingListService = Depends(get_waiting_list_service),
):
    return to_response(service.confirm_offer(entry_id=entry_id))


@api.post("/waiting-list/{entry_id}/decline", response_model=WaitingListEntryResponse)
def decline_waiting_list_offer(
    entry_id: str,
    service: WaitingListService = Depends(get_waiting_list_service),
):
    return to_response(service.decline_offer(entry_id=entry_id))


@api.post("/waiting-list/notify-next", response_model=NotifyResult)
async def notify_next_in_waiting_list(
    payload: NotifyNextPayload,
    session: Session = Depends(get_db),
    service: WaitingListService = Depends(get_waiting_list_service),
):
    clinic_name = payload.clinic_name
    if clinic_name is None:
        clinic = DirectoryRepository(session).get_clinic(clinic_id=payload.clinic_id)
        clinic_name = clinic.name if clinic else None
    result = await service.notify_next(clinic_id=payload.clinic_id, clinic_name=clinic_name, slot=payload.slot)
    logger.info("notify-next for clinic {clinic_id}: {outcome}", clinic_id=payload.clinic_id, outcome=result.outcome)
    return result


@api.post("/waiting-list/{entry_id}/notify", response_model=NotifyResult)
async def notify_waiting_list_entry(
    entry_id: str,
    payload: NotifyEntryPayload | None = None,
    service: WaitingListService = Depends(get_waiting_list_service),
):
    payload = payload or NotifyEntryPayload()
    result = await service.notify_entry(entry_id=entry_id, clinic_name=payload.clinic_name, slot=payload.slot)
    logger.info("notify for entry {entry_id}: {outcome}", entry_id=entry_id, outcome=result.outcome)
    return result


@api.post("/waiting-list/expire-offers", response_model=ExpireOffersResponse)
def expire_waiting_list_offers(service: WaitingListService = Depends(get_waiting_list_service)):
    return ExpireOffersResponse(expired=service.expire_stale_offers())


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


router.include_router(api)
