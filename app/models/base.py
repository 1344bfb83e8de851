from __future__ import annotations

import re
from datetime import datetime, timezone

from nanoid import generate
from sqlalchemy.orm import DeclarativeBase, declared_attr

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def new_id() -> str:
    return generate(size=16)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    @declared_attr.directive
    def __tablename__(cls) -> str:
        return _CAMEL_RE.sub("_", cls.__name__).lower()
