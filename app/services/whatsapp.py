from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Protocol

import httpx
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import WhatsAppConfig, get_settings
from app.models.message_log import MessageLog
from app.schemas.messaging import MessageType, SendResult

MAX_MESSAGE_LENGTH = 4096
_NON_DIGITS = re.compile(r"\D")
_DISCONNECTED_MARKERS = ("disconnected", "not connected", "ENOTFOUND", "QR")


class Messenger(Protocol):
    async def send_message(
        self,
        *,
        phone: str,
        message: str,
        clinic_id: str,
        message_type: MessageType = "custom",
    ) -> SendResult: ...


def normalize_phone(phone: str, country_code: str = "55") -> str | None:
    """Digits-only number with the country code, or None when it cannot be a valid phone."""
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) < 10 or len(digits) > 13:
        return None
    if not digits.startswith(country_code):
        digits = country_code + digits
    return digits


class WhatsAppService:
    """Sends text messages through an Evolution API instance."""

    def __init__(
        self,
        session: Session,
        *,
        config: WhatsAppConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_settings().whatsapp
        self.transport = transport

    async def send_message(
        self,
        *,
        phone: str,
        message: str,
        clinic_id: str,
        message_type: MessageType = "custom",
    ) -> SendResult:
        if not phone or not message or not clinic_id:
            return SendResult(success=False, error="Telefone, mensagem e ID da clínica são obrigatórios")

        number = normalize_phone(phone, self.config.country_code)
        if number is None:
            return SendResult(success=False, error="Formato de telefone inválido")

        if len(message) > MAX_MESSAGE_LENGTH:
            return SendResult(success=False, error=f"Mensagem muito longa (máx {MAX_MESSAGE_LENGTH} caracteres)")

        if not self.config.configured:
            logger.warning("WhatsApp is not configured; message to clinic {clinic_id} dropped", clinic_id=clinic_id)
            return SendResult(success=False, error="WhatsApp não configurado")

        month_year = datetime.now(timezone.utc).strftime("%Y-%m")
        if self._limit_reached(clinic_id=clinic_id, month_year=month_year):
            logger.info("Clinic {clinic_id} reached its monthly message limit", clinic_id=clinic_id)
            return SendResult(
                success=False,
                error="Limite de mensagens do mês atingido. Faça upgrade do plano para enviar mais.",
            )

        try:
            response = await self._post(number=number, message=message)
        except httpx.HTTPError as exc:
            logger.error("WhatsApp request failed for clinic {clinic_id}: {error}", clinic_id=clinic_id, error=exc)
            return SendResult(success=False, error=str(exc) or "Erro ao enviar mensagem")

        payload = _json_or_empty(response)
        if response.is_error:
            error_message = str(payload.get("message") or payload.get("error") or "")
            logger.error(
                "Evolution API error {status} for clinic {clinic_id}: {error}",
                status=response.status_code,
                clinic_id=clinic_id,
                error=error_message,
            )
            if any(marker in error_message for marker in _DISCONNECTED_MARKERS):
                return SendResult(
                    success=False,
                    error="WhatsApp desconectado. Escaneie o QR Code novamente em Configurações > Integrações.",
                )
            return SendResult(success=False, error=error_message or "Erro ao enviar mensagem")

        self.session.add(
            MessageLog(clinic_id=clinic_id, message_type=message_type, phone=number, month_year=month_year)
        )
        self.session.flush()
        key = payload.get("key")
        message_id = key.get("id") if isinstance(key, dict) else None
        logger.info("WhatsApp {type} message sent to {phone}", type=message_type, phone=number)
        return SendResult(success=True, message_id=message_id)

    def _limit_reached(self, *, clinic_id: str, month_year: str) -> bool:
        if self.config.monthly_limit <= 0:
            return False
        stmt = select(func.count(MessageLog.id)).where(
            MessageLog.clinic_id == clinic_id,
            MessageLog.month_year == month_year,
        )
        used = self.session.scalar(stmt) or 0
        return used >= self.config.monthly_limit

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _post(self, *, number: str, message: str) -> httpx.Response:
        url = f"{self.config.api_url.rstrip('/')}/message/sendText/{self.config.instance_name}"
        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout_seconds) as client:
            return await client.post(
                url,
                headers={"apikey": self.config.api_key},
                json={"number": number, "text": message},
            )


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
