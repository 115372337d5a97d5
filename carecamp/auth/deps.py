from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carecamp.config import Config
from carecamp.db import ResourceStore, id_filter
from carecamp.models import REGISTRATIONS, Identity

from .crud import is_admin
from .security import verify_access_token


_bearer = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    # A single detail string: callers never learn why a token was rejected.
    return HTTPException(status_code=401, detail="unauthorized_access", headers={"WWW-Authenticate": "Bearer"})


def _forbidden() -> HTTPException:
    return HTTPException(status_code=403, detail="forbidden_access")


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def get_store(request: Request) -> ResourceStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="store_missing")
    return store


def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_config),
) -> Identity:
    """Authenticate a request.

    The browser sends the httpOnly cookie set by POST /jwt. Scripts may send
    `Authorization: Bearer <jwt>` instead; the cookie wins when both are present.
    """

    token = request.cookies.get(cfg.AUTH_COOKIE_NAME)
    if not token and credentials is not None and credentials.credentials:
        token = credentials.credentials

    if not token:
        raise _unauthorized()

    claims = verify_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    if claims is None:
        raise _unauthorized()

    return Identity(email=str(claims["email"]), claims=claims)


# -----------------------------
# Authorization checks
# -----------------------------


def ensure_self(identity: Identity, email: str | None) -> None:
    if not identity.is_self(email):
        raise _forbidden()


def ensure_registration_owner(identity: Identity, registration: Dict[str, Any]) -> None:
    ensure_self(identity, registration.get("participant_email"))


def require_self(email: str, identity: Identity = Depends(get_identity)) -> Identity:
    """Gate for routes whose `{email}` path parameter must be the caller's."""
    ensure_self(identity, email)
    return identity


def require_admin(
    identity: Identity = Depends(get_identity),
    store: ResourceStore = Depends(get_store),
) -> Identity:
    # Role lives on the stored user, not in the token, so demotions apply immediately.
    if not is_admin(store, identity.email):
        raise HTTPException(status_code=403, detail="admin_required")
    return identity


def require_registration_owner(
    registration_id: str,
    identity: Identity = Depends(get_identity),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    """Load `{registration_id}` and require the caller to be its participant."""
    registration = store.find_one(REGISTRATIONS, id_filter(registration_id))
    if registration is None:
        raise HTTPException(status_code=404, detail="registration_not_found")
    ensure_registration_owner(identity, registration)
    return registration
