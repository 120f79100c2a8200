import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Sighting(Base):
    __tablename__ = "sightings"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    event_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    activity_type = Column(String(64), nullable=False)
    notes = Column(Text, nullable=True)
    media = Column(JSON, nullable=False, default=list)  # [{"path": ..., "type": ...}]
    status = Column(String, nullable=False, default="unverified", index=True)
    validations_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "status in ('unverified','verified','active','confirmed')",
            name="sightings_status_chk",
        ),
        CheckConstraint("lat >= -90 and lat <= 90", name="sightings_lat_chk"),
        CheckConstraint("lng >= -180 and lng <= 180", name="sightings_lng_chk"),
    )


class Validation(Base):
    __tablename__ = "validations"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sighting_id = Column(
        String(36),
        ForeignKey("sightings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_fingerprint = Column(String(256), nullable=False)
    is_within_range = Column(Boolean, nullable=False, default=True)
    validator_id = Column(String(36), nullable=True)  # authenticated principal, if any

    __table_args__ = (
        # One vote per device per sighting; the store enforces it, not the client
        UniqueConstraint("sighting_id", "device_fingerprint", name="validations_unique_device_per_sighting"),
        CheckConstraint(
            "length(device_fingerprint) between 16 and 256",
            name="validations_device_fingerprint_len_chk",
        ),
    )


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default="anonymous", index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("role in ('anonymous','trusted','admin')", name="profiles_role_chk"),
    )


class PendingInvite(Base):
    __tablename__ = "pending_invites"

    email = Column(String, primary_key=True)  # stored trimmed + lowercased
    invited_by = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
