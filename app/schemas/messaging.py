from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

MessageType = Literal["reminder", "confirmation", "custom", "document", "waiting_list"]


class SendResult(BaseModel):
    success: bool
    error: str | None = None
    message_id: str | None = None
