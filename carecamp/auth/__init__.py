"""Authentication / authorization helpers.

Auth is deliberately thin:

- Sign-in itself happens in the front-end identity provider; the browser then
  calls POST /jwt with the signed-in email.
- The API answers with a JWT in an httpOnly cookie (30 day lifetime).
- Roles live on the user document (`user` | `admin`) and are looked up per request.

Gates are FastAPI dependencies that return the caller's Identity (or the
resource being guarded) instead of mutating the request.
"""

from .deps import (
    ensure_registration_owner,
    ensure_self,
    get_identity,
    require_admin,
    require_registration_owner,
    require_self,
)
from .crud import bootstrap_admin_if_needed, create_user

__all__ = [
    "ensure_registration_owner",
    "ensure_self",
    "get_identity",
    "require_admin",
    "require_registration_owner",
    "require_self",
    "bootstrap_admin_if_needed",
    "create_user",
]
