from __future__ import annotations

from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from resupify.db.session import get_db_session
from resupify.errors import ValidationError


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_user_id(x_user_id: str | None = Header(default=None)) -> int:
    if not x_user_id or not x_user_id.strip().isdigit():
        raise ValidationError("X-User-Id header with a numeric user id is required")
    return int(x_user_id.strip())
