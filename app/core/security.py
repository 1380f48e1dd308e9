from __future__ import annotations

from typing import Any

from jose import jwt

from app.core.config import get_settings


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
