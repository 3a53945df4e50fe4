from uuid import UUID

from pydantic import BaseModel

SHIFTS: tuple[str, ...] = ("AM", "PM", "NOC")


class Profile(BaseModel):
    user_id: UUID
    display_name: str | None = None
    role: str | None = "CS"
    shift: str | None = None

    @property
    def is_complete(self) -> bool:
        """Onboarding gate: a display name and a known shift are both required."""
        return bool((self.display_name or "").strip()) and self.shift in SHIFTS


class Actor(BaseModel):
    """The signed-in user a request acts for."""
    user_id: UUID
    email: str | None = None
    access_token: str

    @property
    def label(self) -> str:
        return self.email or str(self.user_id)
