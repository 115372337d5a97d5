from __future__ import annotations

from typing import Any, Dict, Optional

from carecamp.config import Config
from carecamp.db import ResourceStore
from carecamp.models import ROLE_ADMIN, ROLE_USER, USERS, normalize_email
from carecamp.util.time import utcnow_iso


# Fields a user may change on their own profile.
PROFILE_FIELDS = ("name", "image")


def get_user_by_email(store: ResourceStore, email: str) -> Optional[Dict[str, Any]]:
    e = normalize_email(email)
    if not e:
        return None
    return store.find_one(USERS, {"email": e})


def is_admin(store: ResourceStore, email: str) -> bool:
    user = get_user_by_email(store, email)
    return user is not None and user.get("role") == ROLE_ADMIN


def create_user(
    store: ResourceStore,
    *,
    email: str,
    name: str | None = None,
    image: str | None = None,
    role: str = ROLE_USER,
) -> str:
    """Insert a new user document and return its id."""
    e = normalize_email(email)
    if not e:
        raise ValueError("email_blank")
    if role not in (ROLE_ADMIN, ROLE_USER):
        raise ValueError("invalid_role")

    now = utcnow_iso()
    return store.insert_one(
        USERS,
        {
            "email": e,
            "name": (name or "").strip() or None,
            "image": image,
            "role": role,
            "created_at": now,
            "updated_at": now,
        },
    )


def update_profile(store: ResourceStore, email: str, fields: Dict[str, Any]) -> int:
    """Apply a self-service profile update. Only PROFILE_FIELDS are touched."""
    updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
    if not updates:
        return 0
    updates["updated_at"] = utcnow_iso()
    return store.update_one(USERS, {"email": normalize_email(email)}, updates)


def set_role(store: ResourceStore, email: str, role: str) -> int:
    if role not in (ROLE_ADMIN, ROLE_USER):
        raise ValueError("invalid_role")
    return store.update_one(
        USERS,
        {"email": normalize_email(email)},
        {"role": role, "updated_at": utcnow_iso()},
    )


def bootstrap_admin_if_needed(cfg: Config, store: ResourceStore) -> Optional[Dict[str, Any]]:
    """Make BOOTSTRAP_ADMIN_EMAIL an admin, creating the user if needed.

    Returns the admin document when something changed, else None.
    """
    email = normalize_email(cfg.BOOTSTRAP_ADMIN_EMAIL)
    if not email:
        return None

    existing = get_user_by_email(store, email)
    if existing is None:
        create_user(store, email=email, role=ROLE_ADMIN)
    elif existing.get("role") != ROLE_ADMIN:
        set_role(store, email, ROLE_ADMIN)
    else:
        return None
    return get_user_by_email(store, email)
