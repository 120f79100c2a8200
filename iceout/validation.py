"""Validation admission and recording.

Gate order: proximity first, then the (sighting, device) uniqueness
constraint. A device rejected as out of range has not used its slot and may
retry from closer.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .device import check_identifier_length
from .errors import GeolocationError, RejectionReason, SightingNotFound, ValidationNotFound
from .geo import PROXIMITY_RADIUS_M, is_within_proximity
from .geolocation import DEFAULT_TIMEOUT_S, Locator, acquire_position
from .models import Sighting, Validation
from .promotion import recompute

logger = logging.getLogger("iceout.validation")


@dataclass
class ValidationOutcome:
    admitted: bool
    sighting: Sighting
    reason: Optional[RejectionReason] = None
    validation_id: Optional[str] = None

    @classmethod
    def rejected(cls, sighting: Sighting, reason: RejectionReason) -> "ValidationOutcome":
        return cls(admitted=False, sighting=sighting, reason=reason)


def submit_validation(
    db: Session,
    sighting_id: str,
    device_fingerprint: str,
    observed: Tuple[float, float],
    principal_id: Optional[str] = None,
    radius_m: float = PROXIMITY_RADIUS_M,
) -> ValidationOutcome:
    """Admit and record one validation, then recompute the sighting.

    ``observed`` is the validator's ``(lat, lng)``; it is used for the
    proximity gate only and is never persisted.
    Raises ``InvalidDeviceIdentifier`` for a fingerprint outside 16-256 chars.
    """
    device_fingerprint = check_identifier_length(device_fingerprint)
    sighting = db.get(Sighting, sighting_id)
    if sighting is None:
        raise SightingNotFound(sighting_id)

    obs_lat, obs_lng = observed
    if not is_within_proximity(obs_lat, obs_lng, sighting.lat, sighting.lng, radius_m):
        logger.info("Validation rejected sighting=%s reason=%s", sighting_id, RejectionReason.OUT_OF_RANGE.value)
        return ValidationOutcome.rejected(sighting, RejectionReason.OUT_OF_RANGE)

    row = Validation(
        sighting_id=sighting_id,
        device_fingerprint=device_fingerprint,
        is_within_range=True,
        validator_id=principal_id,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        logger.info("Validation rejected sighting=%s reason=%s", sighting_id, RejectionReason.DUPLICATE_DEVICE.value)
        db.rollback()
        sighting = db.get(Sighting, sighting_id)
        return ValidationOutcome.rejected(sighting, RejectionReason.DUPLICATE_DEVICE)

    try:
        sighting = recompute(db, sighting_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(
        "Validation admitted sighting=%s validation=%s count=%s status=%s",
        sighting_id, row.id, sighting.validations_count, sighting.status,
    )
    return ValidationOutcome(admitted=True, sighting=sighting, validation_id=row.id)


def delete_validation(db: Session, validation_id: str) -> Sighting:
    row = db.get(Validation, validation_id)
    if row is None:
        raise ValidationNotFound(validation_id)
    sighting_id = row.sighting_id
    try:
        db.delete(row)
        db.flush()
        sighting = recompute(db, sighting_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Validation %s deleted; sighting=%s count=%s", validation_id, sighting_id, sighting.validations_count)
    return sighting


def submit_validation_located(
    db: Session,
    sighting_id: str,
    device_fingerprint: str,
    locator: Locator,
    principal_id: Optional[str] = None,
    radius_m: float = PROXIMITY_RADIUS_M,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> ValidationOutcome:
    """Like ``submit_validation`` but acquires the observer position first.

    Denied or timed-out geolocation is a rejection with its own reason,
    distinct from ``OUT_OF_RANGE``; nothing is recorded.
    """
    sighting = db.get(Sighting, sighting_id)
    if sighting is None:
        raise SightingNotFound(sighting_id)
    try:
        observed = acquire_position(locator, timeout_s)
    except GeolocationError as exc:
        logger.info("Validation rejected sighting=%s reason=%s", sighting_id, exc.reason.value)
        return ValidationOutcome.rejected(sighting, exc.reason)
    return submit_validation(db, sighting_id, device_fingerprint, observed, principal_id, radius_m)
