from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request
import logging
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import List, Optional
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .authority import (
    Role,
    confirm_sighting,
    invite_validator,
    list_invites,
    list_profiles,
    register_sign_in,
    remove_validation,
    revoke_invite,
    role_of,
    set_role,
)
from .config import Settings
from .database import create_db_engine, get_db, init_db, make_session_factory
from .device import DeviceIdentityProvider, new_device_token
from .errors import (
    REJECTION_MESSAGES,
    Forbidden,
    InvalidDeviceIdentifier,
    InvalidEmail,
    PrincipalNotFound,
    RejectionReason,
    SightingNotFound,
    ValidationNotFound,
)
from .geolocation import reason_from_client_error
from .models import Sighting as SightingModel
from .promotion import ACTIVE, VERIFIED
from .schemas import (
    DeviceTokenResponse,
    InviteCreate,
    InviteResponse,
    ProfileResponse,
    RoleChange,
    SightingCreate,
    SightingResponse,
    SignIn,
    ValidationCreate,
    ValidationResult,
)
from .validation import submit_validation

logger = logging.getLogger("iceout.api")

# Identity of the caller, set by the upstream auth layer; absent for anonymous users
PrincipalHeader = Header(default=None, alias="X-Principal-Id")


def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    """Build the API. The caller owns ``engine``; when omitted one is made from settings."""
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    if engine is None:
        engine = create_db_engine(settings.database_url)
    init_db(engine)

    app = FastAPI(title="ICE OUT Sightings API")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.device_identity = DeviceIdentityProvider(settings.device_id_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(Forbidden)
    async def _forbidden(request: Request, exc: Forbidden):
        return JSONResponse(status_code=403, content={"detail": "Not permitted"})

    @app.exception_handler(SightingNotFound)
    async def _sighting_missing(request: Request, exc: SightingNotFound):
        return JSONResponse(status_code=404, content={"detail": "Sighting not found"})

    @app.exception_handler(ValidationNotFound)
    async def _validation_missing(request: Request, exc: ValidationNotFound):
        return JSONResponse(status_code=404, content={"detail": "Validation not found"})

    @app.exception_handler(PrincipalNotFound)
    async def _principal_missing(request: Request, exc: PrincipalNotFound):
        return JSONResponse(status_code=404, content={"detail": "Principal not found"})

    @app.exception_handler(InvalidDeviceIdentifier)
    async def _bad_device(request: Request, exc: InvalidDeviceIdentifier):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(InvalidEmail)
    async def _bad_email(request: Request, exc: InvalidEmail):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Store failure on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=503,
            content={"detail": "Service temporarily unavailable. Please try again."},
        )


def _rejection(status_code: int, reason: RejectionReason, sighting=None) -> JSONResponse:
    body = ValidationResult(
        admitted=False,
        reason=reason.value,
        message=REJECTION_MESSAGES[reason],
        sighting=SightingResponse.model_validate(sighting) if sighting is not None else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    def read_root():
        return {"message": "ICE OUT Sightings API", "version": "1.0.0"}

    @app.get("/api/sightings", response_model=List[SightingResponse])
    def get_sightings(
        status: Optional[str] = Query(None, description="unverified | verified | confirmed"),
        limit: int = Query(500, ge=1, le=5000),
        db: Session = Depends(get_db),
    ):
        q = db.query(SightingModel)
        if status == VERIFIED:
            q = q.filter(SightingModel.status.in_([VERIFIED, ACTIVE]))
        elif status:
            q = q.filter(SightingModel.status == status)
        return q.order_by(SightingModel.event_time.desc()).limit(limit).all()

    @app.post("/api/sightings", response_model=SightingResponse, status_code=201)
    def create_sighting(sighting: SightingCreate, db: Session = Depends(get_db)):
        # Default event_time to now if omitted
        event_time = sighting.event_time or datetime.now(timezone.utc)
        row = SightingModel(
            event_time=event_time,
            lat=sighting.lat,
            lng=sighting.lng,
            activity_type=sighting.activity_type,
            notes=sighting.notes,
            media=[m.model_dump() for m in sighting.media],
            status="unverified",
            validations_count=0,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info("Saved sighting id=%s activity=%s media=%s", row.id, row.activity_type, len(row.media))
        return row

    @app.get("/api/sightings/{sighting_id}", response_model=SightingResponse)
    def get_sighting(sighting_id: str, db: Session = Depends(get_db)):
        row = db.get(SightingModel, sighting_id)
        if not row:
            raise HTTPException(status_code=404, detail="Sighting not found")
        return row

    @app.post("/api/device-token", response_model=DeviceTokenResponse)
    def issue_device_token():
        return DeviceTokenResponse(device_token=new_device_token())

    @app.post(
        "/api/sightings/{sighting_id}/validations",
        response_model=ValidationResult,
        status_code=201,
    )
    def validate_sighting(
        sighting_id: str,
        body: ValidationCreate,
        request: Request,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        if db.get(SightingModel, sighting_id) is None:
            raise SightingNotFound(sighting_id)
        if body.geolocation_error:
            return _rejection(422, reason_from_client_error(body.geolocation_error))

        fingerprint = request.app.state.device_identity.fingerprint(body.device_token)
        outcome = submit_validation(
            db,
            sighting_id,
            fingerprint,
            (body.lat, body.lng),
            principal_id=principal_id,
            radius_m=request.app.state.settings.proximity_radius_m,
        )
        if not outcome.admitted:
            status_code = 409 if outcome.reason == RejectionReason.DUPLICATE_DEVICE else 422
            return _rejection(status_code, outcome.reason, outcome.sighting)
        return ValidationResult(
            admitted=True,
            validation_id=outcome.validation_id,
            sighting=SightingResponse.model_validate(outcome.sighting),
        )

    @app.delete("/api/validations/{validation_id}", response_model=SightingResponse)
    def delete_validation_route(
        validation_id: str,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        return remove_validation(db, principal_id, validation_id)

    @app.post("/api/sightings/{sighting_id}/confirm", response_model=SightingResponse)
    def confirm(
        sighting_id: str,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        return confirm_sighting(db, principal_id, sighting_id)

    @app.post("/api/auth/sign-in", response_model=ProfileResponse)
    def sign_in(body: SignIn, db: Session = Depends(get_db)):
        return register_sign_in(db, body.principal_id, body.email)

    @app.get("/api/me", response_model=ProfileResponse)
    def me(principal_id: Optional[str] = PrincipalHeader, db: Session = Depends(get_db)):
        if not principal_id:
            raise HTTPException(status_code=401, detail="Sign-in required")
        return ProfileResponse(id=principal_id, role=role_of(db, principal_id).value)

    @app.get("/api/admin/profiles", response_model=List[ProfileResponse])
    def admin_profiles(principal_id: Optional[str] = PrincipalHeader, db: Session = Depends(get_db)):
        return list_profiles(db, principal_id)

    @app.put("/api/admin/profiles/{target_id}/role", response_model=ProfileResponse)
    def admin_set_role(
        target_id: str,
        body: RoleChange,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        return set_role(db, principal_id, target_id, Role(body.role))

    @app.get("/api/admin/invites", response_model=List[InviteResponse])
    def admin_invites(principal_id: Optional[str] = PrincipalHeader, db: Session = Depends(get_db)):
        return list_invites(db, principal_id)

    @app.post("/api/admin/invites", response_model=InviteResponse, status_code=201)
    def admin_invite(
        body: InviteCreate,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        return invite_validator(db, principal_id, body.email)

    @app.delete("/api/admin/invites/{email}", status_code=204)
    def admin_revoke_invite(
        email: str,
        principal_id: Optional[str] = PrincipalHeader,
        db: Session = Depends(get_db),
    ):
        if not revoke_invite(db, principal_id, email):
            raise HTTPException(status_code=404, detail="Invite not found")
