"""
Profile Store: per-user display identity, created or replaced during onboarding.
"""

import logging

from cshandoff.database import Database
from cshandoff.errors import SilentWriteRejection, ValidationFailed
from cshandoff.models.profile import SHIFTS, Actor, Profile
from cshandoff.modules.handoffs.store import DATABASE_ERRORS, backend_error, decode

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "CS"
DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 10


def clean_profile_fields(display_name: str, role: str | None, shift: str) -> tuple[str, str, str]:
    """Normalise onboarding input; raises ValidationFailed before anything is written."""
    dn = (display_name or "").strip().upper()
    if not DISPLAY_NAME_MIN <= len(dn) <= DISPLAY_NAME_MAX:
        raise ValidationFailed(
            f"Initials must be {DISPLAY_NAME_MIN}-{DISPLAY_NAME_MAX} characters (e.g., KM, MA, FR)."
        )
    s = (shift or "").strip().upper()
    if s not in SHIFTS:
        raise ValidationFailed(f"Shift must be one of: {', '.join(SHIFTS)}")
    return dn, (role or "").strip() or DEFAULT_ROLE, s


class ProfileStore:
    def __init__(self, db: Database):
        self.db = db

    async def get_profile(self, actor: Actor) -> Profile | None:
        try:
            async with self.db.session(actor) as conn:
                row = await conn.fetchrow(
                    "SELECT user_id, display_name, role, shift FROM profiles WHERE user_id = $1",
                    actor.user_id,
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        return decode(Profile, row) if row else None

    async def upsert_profile(self, actor: Actor, display_name: str, role: str | None, shift: str) -> Profile:
        dn, r, s = clean_profile_fields(display_name, role, shift)
        try:
            async with self.db.session(actor) as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO profiles (user_id, display_name, role, shift)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (user_id) DO UPDATE
                    SET display_name = EXCLUDED.display_name, role = EXCLUDED.role, shift = EXCLUDED.shift
                    RETURNING user_id, display_name, role, shift
                    """,
                    actor.user_id, dn, r, s,
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        if not row:
            raise SilentWriteRejection("Profile was not saved. Access control rejected the write.")
        logger.info("Profile saved for %s (%s, %s)", actor.user_id, dn, s)
        return decode(Profile, row)
