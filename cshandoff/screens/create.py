"""Create screen: enum-driven form for a new handoff."""

import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from cshandoff.config import Settings
from cshandoff.deps import (
    get_enum_catalog,
    get_handoff_store,
    get_http,
    get_profile_store,
    require_actor,
    settings_dep,
)
from cshandoff.errors import HandoffError, ValidationFailed
from cshandoff.models.profile import Actor
from cshandoff.modules.handoffs.enums import EnumCatalog, EnumOptions
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.profiles.store import ProfileStore
from cshandoff.modules.sms.alerts import record_alert
from cshandoff.screens.common import actor_info

router = APIRouter()
logger = logging.getLogger(__name__)

SUMMARY_MIN_LENGTH = 5
DEFAULT_LOCATION = "CS"


class NewHandoff(BaseModel):
    summary: str = ""
    category: str = ""
    priority: str = ""
    location_code: str = DEFAULT_LOCATION


def title_case_enum(value: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in (value or "").strip().replace("_", " ").split())


def _options(opts: EnumOptions) -> list[dict]:
    return [{"value": v, "label": title_case_enum(v)} for v in opts.values]


def validate_new_handoff(form: NewHandoff, categories: EnumOptions) -> NewHandoff:
    """Client-side checks only; the database stays the authority on enum legality."""
    summary = form.summary.strip()
    if len(summary) < SUMMARY_MIN_LENGTH:
        raise ValidationFailed(f"Summary needs at least {SUMMARY_MIN_LENGTH} characters.")
    if not form.category or form.category not in categories:
        raise ValidationFailed("Pick a category.")
    if not form.priority.strip():
        raise ValidationFailed("Pick a priority.")
    location = form.location_code.strip()
    if not location:
        raise ValidationFailed("Location code is required.")
    return NewHandoff(summary=summary, category=form.category, priority=form.priority.strip(), location_code=location)


async def load_create(actor: Actor, enums: EnumCatalog) -> tuple[dict, EnumOptions | None]:
    state = {
        "actor": actor_info(actor),
        "categories": [],
        "priorities": [],
        "defaults": {"category": None, "priority": None, "location_code": DEFAULT_LOCATION},
        "can_submit": False,
        "error": None,
    }
    try:
        categories = await enums.categories(actor)
    except HandoffError as e:
        state["error"] = e.message
        return state, None
    priorities = await enums.priorities(actor)
    state["categories"] = _options(categories)
    state["priorities"] = _options(priorities)
    state["defaults"]["category"] = categories.default
    state["defaults"]["priority"] = priorities.default
    state["can_submit"] = bool(categories.values)
    return state, categories


@router.get("")
async def create_form(
    actor: Actor = Depends(require_actor),
    enums: EnumCatalog = Depends(get_enum_catalog),
):
    state, _ = await load_create(actor, enums)
    return state


@router.post("")
async def create_handoff(
    body: NewHandoff,
    actor: Actor = Depends(require_actor),
    enums: EnumCatalog = Depends(get_enum_catalog),
    store: HandoffStore = Depends(get_handoff_store),
    profiles: ProfileStore = Depends(get_profile_store),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(settings_dep),
):
    state, categories = await load_create(actor, enums)
    if categories is None:
        return state

    try:
        form = validate_new_handoff(body, categories)
        profile = await profiles.get_profile(actor)
        handoff_id = await store.create_handoff(
            actor,
            summary=form.summary,
            category=form.category,
            priority=form.priority,
            location_code=form.location_code,
            display_name=profile.display_name if profile else None,
        )
    except HandoffError as e:
        state["error"] = e.message
        return state

    try:
        await record_alert(store, http, settings, handoff_id, form.summary, form.priority, form.location_code)
    except HandoffError as e:
        logger.error("Alert audit failed for new handoff %s: %s", handoff_id, e.message)

    return RedirectResponse(f"/handoffs/{handoff_id}", status_code=303)
