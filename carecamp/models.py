from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

# Collections
CAMPS = "camps"
USERS = "users"
REGISTRATIONS = "registered-camps"
FEEDBACKS = "feedbacks"
PAYMENTS = "payments"

ALL_COLLECTIONS = (CAMPS, USERS, REGISTRATIONS, FEEDBACKS, PAYMENTS)

# User roles
ROLE_USER = "user"
ROLE_ADMIN = "admin"

# Registration.payment_status
UNPAID = "Unpaid"
PAID = "Paid"

# Registration.confirmation_status
PENDING = "Pending"
CONFIRMED = "Confirmed"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class Identity:
    """Decoded token claims for the authenticated caller."""

    email: str
    claims: Dict[str, Any] = field(default_factory=dict)

    def is_self(self, email: str | None) -> bool:
        target = normalize_email(email)
        return bool(target) and target == normalize_email(self.email)
