"""Helpers for loading and creating per-identity records."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from twist_api.core.settings import settings
from twist_api.models.user import TwistUser

__all__ = [
    "get_user",
    "ensure_user",
    "update_profile",
]


def get_user(db: Session, fid: int) -> TwistUser | None:
    """Return a single user by fid."""
    return db.get(TwistUser, fid)


def ensure_user(db: Session, fid: int, now: int) -> TwistUser:
    """Return the user for `fid`, creating it with a fresh daily allowance."""
    user = db.get(TwistUser, fid)
    if user is not None:
        return user

    user = TwistUser(fid=fid, spins_left=settings.spins_per_day, last_spin_reset=now)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by another request.
        db.rollback()
        existing = db.get(TwistUser, fid)
        if existing is None:
            raise
        return existing
    return user


def update_profile(
    db: Session, user: TwistUser, *, username: str | None, pfp_url: str | None
) -> None:
    """Store display fields reported by the client, without committing."""
    if username:
        user.username = username
    if pfp_url:
        user.pfp_url = pfp_url
