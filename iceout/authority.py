"""Role and override authority.

Every mutation below checks the acting principal's role before touching any row.
"""

import logging
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from .errors import Forbidden, InvalidEmail, PrincipalNotFound, SightingNotFound
from .models import PendingInvite, Profile, Sighting
from .promotion import CONFIRMED
from .validation import delete_validation

logger = logging.getLogger("iceout.authority")


class Role(str, Enum):
    ANONYMOUS = "anonymous"
    TRUSTED = "trusted"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank


_RANKS = {Role.ANONYMOUS: 0, Role.TRUSTED: 1, Role.ADMIN: 2}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def role_of(db: Session, principal_id: Optional[str]) -> Role:
    """Role for ``principal_id``; unknown or missing principals are anonymous."""
    if not principal_id:
        return Role.ANONYMOUS
    profile = db.get(Profile, principal_id)
    if profile is None:
        return Role.ANONYMOUS
    return Role(profile.role)


def _require(db: Session, actor_id: Optional[str], minimum: Role) -> None:
    if not role_of(db, actor_id).at_least(minimum):
        logger.info("Forbidden: actor=%s needs role>=%s", actor_id, minimum.value)
        raise Forbidden()


def set_role(db: Session, actor_id: Optional[str], target_id: str, new_role: Role) -> Profile:
    _require(db, actor_id, Role.ADMIN)
    new_role = Role(new_role)
    target = db.get(Profile, target_id)
    if target is None:
        raise PrincipalNotFound(target_id)
    old_role = target.role
    target.role = new_role.value
    db.commit()
    db.refresh(target)
    logger.info("Role change by %s: %s %s -> %s", actor_id, target_id, old_role, new_role.value)
    return target


def confirm_sighting(db: Session, actor_id: Optional[str], sighting_id: str) -> Sighting:
    """Manual override to ``confirmed``; bypasses the validation threshold."""
    _require(db, actor_id, Role.TRUSTED)
    sighting = db.get(Sighting, sighting_id)
    if sighting is None:
        raise SightingNotFound(sighting_id)
    if sighting.status == CONFIRMED:
        return sighting
    sighting.status = CONFIRMED
    db.commit()
    db.refresh(sighting)
    logger.info("Sighting %s confirmed by %s (validations=%s)", sighting_id, actor_id, sighting.validations_count)
    return sighting


def list_profiles(db: Session, actor_id: Optional[str]) -> List[Profile]:
    _require(db, actor_id, Role.ADMIN)
    return db.query(Profile).order_by(Profile.email).all()


def invite_validator(db: Session, actor_id: Optional[str], email: str) -> PendingInvite:
    """Register (or refresh) a pending invite; the invitee becomes trusted on sign-in."""
    _require(db, actor_id, Role.ADMIN)
    email = normalize_email(email or "")
    if not email or "@" not in email:
        raise InvalidEmail("Valid email required")
    invite = db.get(PendingInvite, email)
    if invite is None:
        invite = PendingInvite(email=email, invited_by=actor_id)
        db.add(invite)
    else:
        invite.invited_by = actor_id
    db.commit()
    db.refresh(invite)
    logger.info("Invite registered for %s by %s", email, actor_id)
    return invite


def list_invites(db: Session, actor_id: Optional[str]) -> List[PendingInvite]:
    _require(db, actor_id, Role.ADMIN)
    return db.query(PendingInvite).order_by(PendingInvite.created_at.desc()).all()


def revoke_invite(db: Session, actor_id: Optional[str], email: str) -> bool:
    _require(db, actor_id, Role.ADMIN)
    deleted = (
        db.query(PendingInvite)
        .filter(PendingInvite.email == normalize_email(email))
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def register_sign_in(db: Session, principal_id: str, email: Optional[str]) -> Profile:
    """Record a principal's sign-in, creating its profile on first sight.

    A brand-new principal whose email matches a pending invite is promoted
    to ``trusted`` and the invite is consumed. Existing profiles are never
    re-promoted.
    """
    profile = db.get(Profile, principal_id)
    if profile is not None:
        if email and not profile.email:
            profile.email = normalize_email(email)
            db.commit()
            db.refresh(profile)
        return profile

    normalized = normalize_email(email) if email else None
    profile = Profile(id=principal_id, email=normalized, role=Role.ANONYMOUS.value)
    db.add(profile)
    if normalized:
        consumed = (
            db.query(PendingInvite)
            .filter(PendingInvite.email == normalized)
            .delete(synchronize_session=False)
        )
        if consumed:
            profile.role = Role.TRUSTED.value
            logger.info("Pending invite consumed; principal %s is now trusted", principal_id)
    db.commit()
    db.refresh(profile)
    return profile


def remove_validation(db: Session, actor_id: Optional[str], validation_id: str) -> Sighting:
    """Admin-only deletion of a validation; the owning sighting is recomputed."""
    _require(db, actor_id, Role.ADMIN)
    sighting = delete_validation(db, validation_id)
    logger.info("Validation %s removed by %s", validation_id, actor_id)
    return sighting
