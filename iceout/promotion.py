"""Status promotion: derive ``validations_count`` and ``status`` from source rows.

The count is always re-read from the validations table, never incremented,
so concurrent recomputations converge on the true total whichever commits
last. ``confirmed`` is only ever set by an explicit override and is never
touched here.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import SightingNotFound
from .models import Sighting, Validation

logger = logging.getLogger("iceout.promotion")

UNVERIFIED = "unverified"
VERIFIED = "verified"
ACTIVE = "active"  # display synonym of verified
CONFIRMED = "confirmed"

BASE_THRESHOLD = 3
MEDIA_THRESHOLD = 2  # Tier 2: media evidence lowers the bar by one


def effective_threshold(media_count: int) -> int:
    return MEDIA_THRESHOLD if media_count > 0 else BASE_THRESHOLD


def derive_status(validations_count: int, media_count: int) -> str:
    if validations_count >= effective_threshold(media_count):
        return VERIFIED
    return UNVERIFIED


def display_status(status: str) -> str:
    return VERIFIED if status == ACTIVE else status


def recompute(db: Session, sighting_id: str) -> Sighting:
    """Recompute count and status for one sighting.

    Flushes but does not commit; the caller owns the transaction so the
    triggering insert/delete and this update land together.
    """
    # Row lock before counting: a concurrent recompute waits here and then counts
    # with a fresh snapshot that includes the other writer's committed row.
    # NO KEY UPDATE (key_share) does not conflict with the KEY SHARE lock our own
    # validation insert already holds through its foreign key.
    sighting = (
        db.query(Sighting)
        .filter(Sighting.id == sighting_id)
        .with_for_update(key_share=True)
        .populate_existing()
        .one_or_none()
    )
    if sighting is None:
        raise SightingNotFound(sighting_id)

    if sighting.status == CONFIRMED:
        return sighting

    count = (
        db.query(func.count(Validation.id))
        .filter(Validation.sighting_id == sighting_id)
        .scalar()
    ) or 0
    new_status = derive_status(count, len(sighting.media or []))
    # verified never falls back automatically; only deletions could lower the count
    if display_status(sighting.status) == VERIFIED and new_status == UNVERIFIED:
        new_status = VERIFIED

    old_status = sighting.status
    # Single statement so count and status are written together; the status guard
    # keeps a concurrent confirm from being overwritten.
    updated = (
        db.query(Sighting)
        .filter(Sighting.id == sighting_id, Sighting.status != CONFIRMED)
        .update(
            {Sighting.validations_count: count, Sighting.status: new_status},
            synchronize_session=False,
        )
    )
    db.flush()
    db.refresh(sighting)
    if updated and old_status != new_status:
        logger.info(
            "Sighting %s promoted %s -> %s (validations=%s)",
            sighting_id, old_status, new_status, count,
        )
    return sighting
