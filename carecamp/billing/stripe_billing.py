from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict

from carecamp.config import Config


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit fee (e.g. 50 or "12.5") to minor units (5000, 1250)."""
    try:
        d = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValueError("invalid_amount") from e
    if not d.is_finite() or d < 0:
        raise ValueError("invalid_amount")
    return int((d * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _get_stripe(cfg: Config):
    try:
        import stripe  # type: ignore
    except ImportError as e:
        raise RuntimeError(
            "Stripe selected but the 'stripe' package is not installed. Install stripe and try again."
        ) from e

    if not cfg.STRIPE_SECRET_KEY:
        raise RuntimeError("stripe_secret_key_missing")

    stripe.api_key = cfg.STRIPE_SECRET_KEY
    return stripe


def create_payment_intent(
    cfg: Config,
    *,
    amount: int,
    currency: str | None = None,
    metadata: Dict[str, str] | None = None,
) -> str:
    """Create a card PaymentIntent for `amount` minor units and return its client secret.

    Stripe SDK errors propagate unchanged; RuntimeError means "not configured".
    """
    if int(amount) <= 0:
        raise ValueError("invalid_amount")

    stripe = _get_stripe(cfg)
    intent = stripe.PaymentIntent.create(
        amount=int(amount),
        currency=(currency or cfg.PAYMENT_CURRENCY),
        payment_method_types=["card"],
        metadata=metadata or {},
    )
    secret = intent.get("client_secret")
    if not secret:
        raise RuntimeError("stripe_client_secret_missing")
    _debug(f"payment intent created id={intent.get('id')} amount={amount}")
    return str(secret)
