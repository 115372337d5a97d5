"""CareCamp - medical camp registration backend.

Users discover camps, register, pay fees and leave feedback.
Administrators manage camp listings, registrations and users.

Core concepts:
- Every endpoint is one auth gate + one or two store calls.
- Identity travels in an httpOnly cookie holding a signed JWT.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
