from datetime import date, datetime, timezone
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .promotion import display_status

MAX_ACTIVITY_TYPE_LEN = 64
MAX_NOTES_LEN = 2000


def parse_event_time(v: Optional[object]) -> Optional[datetime]:
    """Accept ISO-8601 (trailing Z ok), YYYY-MM-DD, unix seconds, or a datetime.

    Naive values are taken as UTC. Unparseable input raises ``ValueError``.
    """
    if v is None:
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, bool):
        raise ValueError("Invalid timestamp")
    if isinstance(v, (int, float)):
        # Treat as unix seconds
        try:
            return datetime.fromtimestamp(float(v), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValueError(f"Invalid timestamp: {v}") from None
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
        try:
            d = date.fromisoformat(s)
            return datetime(d.year, d.month, d.day, 12, 0, tzinfo=timezone.utc)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {v}") from None
    raise ValueError(f"Invalid timestamp: {v!r}")


class MediaRef(BaseModel):
    path: str = Field(min_length=1)
    type: str = Field(validation_alias=AliasChoices("type", "mime_type", "mimeType"))

    @field_validator("type")
    @classmethod
    def _check_mime(cls, v: str) -> str:
        v = v.strip().lower()
        if not (v.startswith("image/") or v.startswith("video/")):
            raise ValueError("Only image or video media is allowed")
        return v


class SightingCreate(BaseModel):
    event_time: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("event_time", "eventTime", "timestamp")
    )
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    activity_type: str = Field(validation_alias=AliasChoices("activity_type", "activityType"))
    notes: Optional[str] = None
    media: List[MediaRef] = Field(default_factory=list)

    @field_validator("event_time", mode="before")
    @classmethod
    def _parse_event_time(cls, v: Optional[object]) -> Optional[datetime]:
        return parse_event_time(v)

    @field_validator("activity_type")
    @classmethod
    def _check_activity_type(cls, v: str) -> str:
        v = v.strip()
        if not (1 <= len(v) <= MAX_ACTIVITY_TYPE_LEN):
            raise ValueError(f"activity_type must be 1-{MAX_ACTIVITY_TYPE_LEN} characters")
        return v

    @field_validator("notes")
    @classmethod
    def _check_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if len(v) > MAX_NOTES_LEN:
            raise ValueError(f"Notes too long: {len(v)} chars (max {MAX_NOTES_LEN})")
        return v or None


class SightingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    event_time: datetime
    lat: float
    lng: float
    activity_type: str
    notes: Optional[str] = None
    media: List[MediaRef] = Field(default_factory=list)
    status: str
    validations_count: int

    @field_validator("status")
    @classmethod
    def _display_status(cls, v: str) -> str:
        return display_status(v)


class ValidationCreate(BaseModel):
    device_token: str = Field(validation_alias=AliasChoices("device_token", "deviceToken"))
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    geolocation_error: Optional[Literal["denied", "timeout"]] = Field(
        default=None, validation_alias=AliasChoices("geolocation_error", "geolocationError")
    )

    @model_validator(mode="after")
    def _need_position_or_error(self) -> "ValidationCreate":
        if self.geolocation_error is None and (self.lat is None or self.lng is None):
            raise ValueError("lat and lng are required unless geolocation_error is set")
        return self


class ValidationResult(BaseModel):
    admitted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    validation_id: Optional[str] = None
    sighting: Optional[SightingResponse] = None


class DeviceTokenResponse(BaseModel):
    device_token: str


class RoleChange(BaseModel):
    role: Literal["anonymous", "trusted", "admin"]


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    role: str


class SignIn(BaseModel):
    principal_id: str = Field(min_length=1, validation_alias=AliasChoices("principal_id", "principalId"))
    email: Optional[str] = None


class InviteCreate(BaseModel):
    email: str


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    invited_by: str
    created_at: datetime
