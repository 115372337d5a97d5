import os
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

# Load a local .env file if present (no-op otherwise).
load_dotenv()


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _environment() -> str:
    raw = os.environ.get("ENVIRONMENT") or os.environ.get("NODE_ENV") or "development"
    return raw.strip().lower()


COOKIE_SAMESITE_VALUES = ("strict", "lax", "none")


def _cookie_samesite() -> str:
    default = "none" if _environment() == "production" else "strict"
    raw = (os.environ.get("AUTH_COOKIE_SAMESITE") or "").strip().lower()
    if not raw:
        return default
    if raw not in COOKIE_SAMESITE_VALUES:
        print(f"[config] ignoring AUTH_COOKIE_SAMESITE={raw!r}; using {default!r}")
        return default
    return raw


def _mongodb_uri() -> str:
    explicit = (os.environ.get("MONGODB_URI") or "").strip()
    if explicit:
        return explicit

    user = os.environ.get("DB_USER")
    password = os.environ.get("DB_PASS")
    host = os.environ.get("DB_CLUSTER_HOST", "cluster0.2zcny.mongodb.net")
    if user and password:
        return (
            f"mongodb+srv://{quote_plus(user)}:{quote_plus(password)}@{host}/"
            "?retryWrites=true&w=majority&appName=Cluster0"
        )
    return "mongodb://localhost:27017"


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # development|production. NODE_ENV is honored so an existing deployment
    # environment keeps working unchanged.
    ENVIRONMENT: str = _environment()

    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT") or os.environ.get("PORT") or "5000")

    # -----------------
    # Database (MongoDB)
    # -----------------
    # Preferred: MONGODB_URI. Fallback: DB_USER + DB_PASS against the Atlas cluster.
    MONGODB_URI: str = _mongodb_uri()
    MONGODB_DB_NAME: str = os.environ.get("MONGODB_DB_NAME", "CareCamp_DB")
    MONGODB_TIMEOUT_MS: int = int(os.environ.get("MONGODB_TIMEOUT_MS", "5000"))

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET (or SECRET_KEY) to a strong random value.
    AUTH_JWT_SECRET: str = (
        os.environ.get("AUTH_JWT_SECRET") or os.environ.get("SECRET_KEY") or "dev_change_me"
    )
    AUTH_TOKEN_EXPIRE_DAYS: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_DAYS", "30"))

    # httpOnly session cookie holding the JWT.
    # Production: SameSite=None + Secure (front-end served from another origin).
    # Development: SameSite=Strict, not Secure (plain http on localhost).
    AUTH_COOKIE_NAME: str = os.environ.get("AUTH_COOKIE_NAME", "token")
    AUTH_COOKIE_PATH: str = os.environ.get("AUTH_COOKIE_PATH", "/")
    AUTH_COOKIE_SAMESITE: str = _cookie_samesite()
    AUTH_COOKIE_SECURE: bool = (
        _env_bool("AUTH_COOKIE_SECURE", None)
        if _env_bool("AUTH_COOKIE_SECURE", None) is not None
        else _environment() == "production"
    )

    # Promote this email to admin on startup (created if missing).
    BOOTSTRAP_ADMIN_EMAIL: str | None = (os.environ.get("BOOTSTRAP_ADMIN_EMAIL") or "").strip() or None

    # -----------------
    # CORS
    # -----------------
    # Comma-separated list of front-end origins allowed to send credentialed requests.
    CORS_ALLOW_ORIGINS: str = os.environ.get("CORS_ALLOW_ORIGINS", "http://localhost:5173")

    # -----------------
    # Payments (Stripe)
    # -----------------
    STRIPE_SECRET_KEY: str | None = (
        os.environ.get("STRIPE_SECRET_KEY") or os.environ.get("PAYMENT_SECRET_KEY")
    )
    PAYMENT_CURRENCY: str = os.environ.get("PAYMENT_CURRENCY", "usd").strip().lower()

    def cors_origins(self) -> List[str]:
        return [o.strip() for o in (self.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]


def load_config() -> Config:
    return Config()
