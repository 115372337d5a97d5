from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from carecamp import __version__
from carecamp.config import Config, load_config
from carecamp.db import InvalidIdError, ResourceStore, connect, contains_filter, id_filter, to_object_id
from carecamp.models import (
    CAMPS,
    CONFIRMED,
    FEEDBACKS,
    PAID,
    PAYMENTS,
    PENDING,
    REGISTRATIONS,
    UNPAID,
    USERS,
    Identity,
    normalize_email,
)
from carecamp.util.time import utcnow_iso

from carecamp.auth import (
    bootstrap_admin_if_needed,
    ensure_self,
    get_identity,
    require_admin,
    require_registration_owner,
    require_self,
)
from carecamp.auth.crud import create_user, get_user_by_email, update_profile
from carecamp.auth.deps import get_config, get_store
from carecamp.auth.security import create_access_token

from carecamp.billing.stripe_billing import create_payment_intent, to_minor_units


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


CONTACT_ADMIN_PAYMENT = "Payment recorded but the registration was not marked as paid. Please contact admin."
CONTACT_ADMIN_REGISTRATION = (
    "Registration recorded but the camp participant count was not updated. Please contact admin."
)

router = APIRouter()


def _inserted(inserted_id: str) -> Dict[str, Any]:
    return {"acknowledged": True, "inserted_id": inserted_id}


def _modified(count: int) -> Dict[str, Any]:
    return {"acknowledged": True, "modified_count": count}


def _deleted(count: int) -> Dict[str, Any]:
    return {"acknowledged": True, "deleted_count": count}


def _partial_failure(message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    body.update(extra)
    return body


# -----------------------------
# Health
# -----------------------------


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "CareCamp Server is taking care"


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


# -----------------------------
# Auth (session cookie)
# -----------------------------


def _cookie_secure(cfg: Config) -> bool:
    """Return whether auth cookies should be marked Secure."""
    # Browsers require Secure when SameSite=None
    if cfg.AUTH_COOKIE_SAMESITE == "none":
        return True
    return bool(cfg.AUTH_COOKIE_SECURE)


def set_auth_cookie(response: Response, *, token: str, cfg: Config) -> None:
    response.set_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        value=str(token),
        httponly=True,
        samesite=cfg.AUTH_COOKIE_SAMESITE,
        secure=_cookie_secure(cfg),
        max_age=int(cfg.AUTH_TOKEN_EXPIRE_DAYS) * 24 * 60 * 60,
        path=cfg.AUTH_COOKIE_PATH,
    )


def clear_auth_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        path=cfg.AUTH_COOKIE_PATH,
        httponly=True,
        samesite=cfg.AUTH_COOKIE_SAMESITE,
        secure=_cookie_secure(cfg),
    )


class TokenRequest(BaseModel):
    email: str = Field(..., min_length=3)
    name: Optional[str] = None


@router.post("/jwt")
def issue_token(
    payload: TokenRequest,
    response: Response,
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    identity: Dict[str, Any] = {"email": normalize_email(payload.email)}
    if payload.name:
        identity["name"] = payload.name
    try:
        token = create_access_token(
            secret=cfg.AUTH_JWT_SECRET,
            identity=identity,
            expires_days=cfg.AUTH_TOKEN_EXPIRE_DAYS,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    set_auth_cookie(response, token=token, cfg=cfg)
    return {"success": True}


@router.get("/logout")
def logout(response: Response, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    clear_auth_cookie(response, cfg)
    return {"success": True}


# -----------------------------
# Users
# -----------------------------


class UserCreateRequest(BaseModel):
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    image: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None


@router.get("/users")
def list_users(
    search: Optional[str] = None,
    role: Optional[str] = Query(None, pattern="^(user|admin)$"),
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    q = contains_filter(("name", "email"), search)
    if role:
        q["role"] = role
    return store.find_many(USERS, q, sort=[("_id", -1)])


@router.post("/users")
def register_user(payload: UserCreateRequest, store: ResourceStore = Depends(get_store)) -> Dict[str, Any]:
    """First sign-in: create the user document unless the email is already known."""
    if get_user_by_email(store, payload.email) is not None:
        return {"message": "user already exists", "inserted_id": None}
    try:
        uid = create_user(store, email=payload.email, name=payload.name, image=payload.image)
    except DuplicateKeyError:
        # Lost a race against a concurrent first sign-in for the same email.
        return {"message": "user already exists", "inserted_id": None}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _inserted(uid)


@router.get("/users/admin/{email}")
def check_admin(
    email: str,
    _me: Identity = Depends(require_self),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    user = get_user_by_email(store, email)
    return {"admin": bool(user and user.get("role") == "admin")}


@router.get("/users/{email}")
def get_profile(
    email: str,
    _me: Identity = Depends(require_self),
    store: ResourceStore = Depends(get_store),
) -> Optional[Dict[str, Any]]:
    return get_user_by_email(store, email)


@router.patch("/users/{email}")
def patch_profile(
    email: str,
    payload: ProfileUpdateRequest,
    _me: Identity = Depends(require_self),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    return _modified(update_profile(store, email, payload.model_dump(exclude_none=True)))


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    return _deleted(store.delete_one(USERS, id_filter(user_id)))


# -----------------------------
# Camps
# -----------------------------

CAMP_SORTS: Dict[str, List[tuple]] = {
    "newest": [("_id", -1)],
    "participants": [("participants", -1), ("_id", -1)],
    "fees": [("fees", 1), ("_id", -1)],
    "name": [("camp_name", 1)],
}


class CampCreateRequest(BaseModel):
    camp_name: str = Field(..., min_length=1)
    image: Optional[str] = None
    location: str
    date: str
    time: str
    fees: float = Field(..., ge=0)
    healthcare_professional: str
    description: str = ""


class CampUpdateRequest(BaseModel):
    camp_name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    fees: Optional[float] = Field(None, ge=0)
    healthcare_professional: Optional[str] = None
    description: Optional[str] = None


@router.get("/camps")
def list_camps(
    search: Optional[str] = None,
    sort: str = Query("newest"),
    limit: int = Query(0, ge=0, le=500),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    sort_key = (sort or "newest").strip().lower()
    if sort_key not in CAMP_SORTS:
        raise HTTPException(status_code=400, detail="invalid_sort")
    q = contains_filter(("camp_name", "location", "healthcare_professional", "date"), search)
    return store.find_many(CAMPS, q, sort=CAMP_SORTS[sort_key], limit=limit)


@router.get("/camps/{camp_id}")
def get_camp(camp_id: str, store: ResourceStore = Depends(get_store)) -> Optional[Dict[str, Any]]:
    return store.find_one(CAMPS, id_filter(camp_id))


@router.post("/camps")
def create_camp(
    payload: CampCreateRequest,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    doc = payload.model_dump()
    now = utcnow_iso()
    doc.update({"participants": 0, "created_at": now, "updated_at": now})
    return _inserted(store.insert_one(CAMPS, doc))


@router.patch("/update-camp/{camp_id}")
def update_camp(
    camp_id: str,
    payload: CampUpdateRequest,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="no_fields")
    fields["updated_at"] = utcnow_iso()
    return _modified(store.update_one(CAMPS, id_filter(camp_id), fields))


@router.delete("/delete-camp/{camp_id}")
def delete_camp(
    camp_id: str,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    return _deleted(store.delete_one(CAMPS, id_filter(camp_id)))


# -----------------------------
# Registrations
# -----------------------------

REGISTRATION_SEARCH_FIELDS = (
    "camp_name",
    "participant_name",
    "healthcare_professional",
    "payment_status",
    "confirmation_status",
)


class RegistrationCreateRequest(BaseModel):
    camp_id: str
    participant_name: str = Field(..., min_length=1)
    participant_email: str
    age: Optional[int] = Field(None, ge=0, le=150)
    phone: Optional[str] = None
    gender: Optional[str] = None
    emergency_contact: Optional[str] = None


@router.post("/registered-camps")
def create_registration(
    payload: RegistrationCreateRequest,
    identity: Identity = Depends(get_identity),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    ensure_self(identity, payload.participant_email)

    camp_oid = to_object_id(payload.camp_id)
    camp = store.find_one(CAMPS, {"_id": camp_oid})
    if camp is None:
        raise HTTPException(status_code=404, detail="camp_not_found")

    now = utcnow_iso()
    doc = payload.model_dump()
    doc.update(
        {
            "camp_id": str(camp_oid),
            "participant_email": normalize_email(payload.participant_email),
            "camp_name": camp.get("camp_name"),
            "location": camp.get("location"),
            "healthcare_professional": camp.get("healthcare_professional"),
            "fees": camp.get("fees"),
            "payment_status": UNPAID,
            "confirmation_status": PENDING,
            "created_at": now,
            "updated_at": now,
        }
    )
    registration_id = store.insert_one(REGISTRATIONS, doc)

    # Not transactional: a missed increment leaves the registration in place.
    if not store.increment_field(CAMPS, {"_id": camp_oid}, "participants", 1):
        _debug(f"participant increment missed camp_id={camp_oid} registration_id={registration_id}")
        return _partial_failure(CONTACT_ADMIN_REGISTRATION, inserted_id=registration_id)
    return _inserted(registration_id)


@router.get("/registered-camps")
def list_registrations(
    search: Optional[str] = None,
    limit: int = Query(0, ge=0, le=500),
    skip: int = Query(0, ge=0),
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    q = contains_filter(REGISTRATION_SEARCH_FIELDS + ("participant_email",), search)
    return store.find_many(REGISTRATIONS, q, sort=[("_id", -1)], limit=limit, skip=skip)


@router.patch("/registered-camps/{registration_id}")
def confirm_registration(
    registration_id: str,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    """Pending -> Confirmed. Already confirmed (or missing) registrations report 0 modified."""
    q = id_filter(registration_id)
    q["confirmation_status"] = PENDING
    return _modified(
        store.update_one(REGISTRATIONS, q, {"confirmation_status": CONFIRMED, "updated_at": utcnow_iso()})
    )


@router.get("/user-registered-camps/{email}")
def list_user_registrations(
    email: str,
    search: Optional[str] = None,
    _me: Identity = Depends(require_self),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    q: Dict[str, Any] = {"participant_email": normalize_email(email)}
    q.update(contains_filter(REGISTRATION_SEARCH_FIELDS, search))
    return store.find_many(REGISTRATIONS, q, sort=[("_id", -1)])


@router.get("/user-registered-camp/{registration_id}")
def get_user_registration(registration: Dict[str, Any] = Depends(require_registration_owner)) -> Dict[str, Any]:
    return registration


@router.delete("/delete-registration/{registration_id}")
def delete_registration(
    registration_id: str,
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    # Participant counts are never decremented on removal.
    return _deleted(store.delete_one(REGISTRATIONS, id_filter(registration_id)))


@router.delete("/cancel-registration/{registration_id}")
def cancel_registration(
    registration: Dict[str, Any] = Depends(require_registration_owner),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    return _deleted(store.delete_one(REGISTRATIONS, id_filter(registration["_id"])))


# -----------------------------
# Payments
# -----------------------------


class PaymentIntentRequest(BaseModel):
    fees: float = Field(..., gt=0)


class PaymentRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1)


@router.post("/create-payment-intent")
def payment_intent(
    payload: PaymentIntentRequest,
    identity: Identity = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    try:
        amount = to_minor_units(payload.fees)
        secret = create_payment_intent(cfg, amount=amount, metadata={"email": identity.email})
        return {"client_secret": secret}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        # Stripe missing / not configured.
        raise HTTPException(status_code=501, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"payment_provider_error: {e}")


@router.post("/payment/{registration_id}")
def record_payment(
    payload: PaymentRequest,
    registration: Dict[str, Any] = Depends(require_registration_owner),
    cfg: Config = Depends(get_config),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    if registration.get("payment_status") == PAID:
        raise HTTPException(status_code=409, detail="already_paid")

    try:
        amount = to_minor_units(registration.get("fees") or 0)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    registration_id = str(registration["_id"])
    try:
        payment_id = store.insert_one(
            PAYMENTS,
            {
                "registration_id": registration_id,
                "camp_id": registration.get("camp_id"),
                "camp_name": registration.get("camp_name"),
                "participant_email": registration.get("participant_email"),
                "amount": amount,
                "currency": cfg.PAYMENT_CURRENCY,
                "transaction_id": payload.transaction_id.strip(),
                "date": utcnow_iso(),
            },
        )
    except DuplicateKeyError:
        # A concurrent request already recorded the payment for this registration.
        raise HTTPException(status_code=409, detail="already_paid")

    q = id_filter(registration_id)
    q["payment_status"] = UNPAID
    if not store.update_one(REGISTRATIONS, q, {"payment_status": PAID, "updated_at": utcnow_iso()}):
        _debug(f"payment status flip missed registration_id={registration_id} payment_id={payment_id}")
        return _partial_failure(CONTACT_ADMIN_PAYMENT, inserted_id=payment_id)
    return _inserted(payment_id)


@router.get("/payment-history/{email}")
def payment_history(
    email: str,
    search: Optional[str] = None,
    _me: Identity = Depends(require_self),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    q: Dict[str, Any] = {"participant_email": normalize_email(email)}
    q.update(contains_filter(("camp_name", "transaction_id"), search))
    return store.find_many(PAYMENTS, q, sort=[("date", -1), ("_id", -1)])


# -----------------------------
# Feedback
# -----------------------------


class FeedbackRequest(BaseModel):
    camp_id: str
    participant_email: str
    participant_name: Optional[str] = None
    participant_image: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    feedback: str = ""


@router.get("/feedbacks")
def list_feedbacks(
    camp_id: Optional[str] = None,
    limit: int = Query(0, ge=0, le=500),
    store: ResourceStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    q: Dict[str, Any] = {}
    if camp_id:
        q["camp_id"] = str(to_object_id(camp_id))
    return store.find_many(FEEDBACKS, q, sort=[("updated_at", -1)], limit=limit)


@router.post("/feedbacks")
def submit_feedback(
    payload: FeedbackRequest,
    identity: Identity = Depends(get_identity),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    ensure_self(identity, payload.participant_email)

    camp_id = str(to_object_id(payload.camp_id))
    email = normalize_email(payload.participant_email)
    fields = payload.model_dump()
    fields.update(
        {
            "camp_id": camp_id,
            "participant_email": email,
            "feedback": (payload.feedback or "").strip(),
            "updated_at": utcnow_iso(),
        }
    )
    res = store.upsert_one(FEEDBACKS, {"camp_id": camp_id, "participant_email": email}, fields)
    return {"acknowledged": True, **res}


# -----------------------------
# Admin
# -----------------------------


@router.get("/admin/stats")
def admin_stats(
    _admin: Identity = Depends(require_admin),
    store: ResourceStore = Depends(get_store),
) -> Dict[str, Any]:
    return {
        "camps": store.count(CAMPS),
        "users": store.count(USERS),
        "registrations": store.count(REGISTRATIONS),
        "paid_registrations": store.count(REGISTRATIONS, {"payment_status": PAID}),
        "confirmed_registrations": store.count(REGISTRATIONS, {"confirmation_status": CONFIRMED}),
        "feedbacks": store.count(FEEDBACKS),
        "payments": store.count(PAYMENTS),
        "revenue": store.sum_field(PAYMENTS, "amount"),
    }


# -----------------------------
# Error envelope
# -----------------------------


def _error(status_code: int, message: Any, *, headers: Optional[Dict[str, str]] = None, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "invalid_request", errors=exc.errors())


async def _invalid_id(request: Request, exc: InvalidIdError) -> JSONResponse:
    return _error(400, "invalid_id")


async def _store_error(request: Request, exc: PyMongoError) -> JSONResponse:
    _debug(f"store error on {request.method} {request.url.path}: {exc!r}")
    return _error(500, "database_error")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(InvalidIdError, _invalid_id)
    app.add_exception_handler(PyMongoError, _store_error)


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Config | None = None, store: ResourceStore | None = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="CareCamp API", version=__version__)

    # Shared by every request via get_config / get_store.
    app.state.cfg = cfg
    app.state.store = store if store is not None else connect(cfg)

    origins = cfg.cors_origins()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    install_error_handlers(app)
    app.include_router(router)

    @app.on_event("startup")
    def _on_startup() -> None:
        s: ResourceStore = app.state.store
        try:
            s.ping()
            _debug("Pinged your deployment. You successfully connected to MongoDB!")
            s.ensure_indexes()
            boot = bootstrap_admin_if_needed(cfg, s)
        except PyMongoError as e:
            # Keep serving; store-backed routes answer database_error until the DB is back.
            _debug(f"MongoDB unavailable at startup: {e!r}")
            return
        if boot:
            _debug(f"Bootstrapped admin user: email={boot.get('email')}")

    return app
