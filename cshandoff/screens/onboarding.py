"""Onboarding screen: the display name and shift coworkers see."""

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from cshandoff.deps import get_profile_store, require_actor
from cshandoff.errors import HandoffError
from cshandoff.models.profile import SHIFTS, Actor
from cshandoff.modules.profiles.store import DEFAULT_ROLE, ProfileStore

router = APIRouter()


class ProfileForm(BaseModel):
    display_name: str = ""
    role: str = DEFAULT_ROLE
    shift: str = SHIFTS[0]


def _state(actor: Actor, display_name: str = "", role: str = DEFAULT_ROLE, shift: str = SHIFTS[0]) -> dict:
    return {
        "email": actor.email,
        "display_name": display_name,
        "role": role,
        "shift": shift,
        "shifts": list(SHIFTS),
        "error": None,
    }


@router.get("")
async def onboarding(
    actor: Actor = Depends(require_actor),
    profiles: ProfileStore = Depends(get_profile_store),
):
    state = _state(actor)
    try:
        profile = await profiles.get_profile(actor)
    except HandoffError as e:
        state["error"] = e.message
        return state
    if profile:
        state["display_name"] = profile.display_name or ""
        state["role"] = profile.role or DEFAULT_ROLE
        if profile.shift in SHIFTS:
            state["shift"] = profile.shift
    return state


@router.post("")
async def save_profile(
    body: ProfileForm,
    actor: Actor = Depends(require_actor),
    profiles: ProfileStore = Depends(get_profile_store),
):
    try:
        await profiles.upsert_profile(actor, body.display_name, body.role, body.shift)
    except HandoffError as e:
        state = _state(actor, body.display_name, body.role, body.shift)
        state["error"] = e.message
        return state
    return RedirectResponse("/", status_code=303)
