"""Verify JWT access tokens issued by the auth service."""
from typing import Any

from jose import JWTError, jwt

from kampusroute.config import settings


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate JWT; return payload or None if invalid/expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def user_id_from_claims(payload: dict[str, Any]) -> str | None:
    """Auth service puts the user id in 'userId'; standard 'sub' is accepted as well."""
    user_id = payload.get("userId") or payload.get("sub")
    if user_id is None:
        return None
    return str(user_id)
