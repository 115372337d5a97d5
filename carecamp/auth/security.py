from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from carecamp.models import normalize_email
from carecamp.util.time import utcnow


_JWT_ALG = "HS256"
_RESERVED = ("iat", "exp")

DEFAULT_EXPIRE_DAYS = 30


def create_access_token(
    *,
    secret: str,
    identity: Dict[str, Any],
    expires_days: int = DEFAULT_EXPIRE_DAYS,
) -> str:
    """Sign `identity` (at minimum an email) into a time-limited token."""
    if not secret:
        raise ValueError("jwt_secret_blank")
    email = normalize_email(identity.get("email"))
    if not email:
        raise ValueError("email_blank")

    now = utcnow()
    exp = now + timedelta(days=max(1, int(expires_days)))

    payload: Dict[str, Any] = {k: v for k, v in identity.items() if k not in _RESERVED}
    payload["email"] = email
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int(exp.timestamp())
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG], options={"require": ["exp"]})


def verify_access_token(*, token: str | None, secret: str) -> Optional[Dict[str, Any]]:
    """Return the identity claims, or None when the token cannot be trusted.

    Expired, malformed and badly signed tokens all collapse to None.
    """
    try:
        payload = decode_access_token(token=token or "", secret=secret)
    except (jwt.InvalidTokenError, ValueError):
        return None

    if not normalize_email(payload.get("email")):
        return None
    return {k: v for k, v in payload.items() if k not in _RESERVED}
