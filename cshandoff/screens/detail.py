"""
Detail screen: one handoff with its update history, plus the append, resolve
and SMS alert actions. Every action re-loads the whole screen afterwards.
"""

from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from cshandoff.config import Settings
from cshandoff.deps import (
    get_changes,
    get_handoff_store,
    get_http,
    require_actor,
    require_profile,
    settings_dep,
)
from cshandoff.errors import HandoffError, ValidationFailed
from cshandoff.models.profile import Actor, Profile
from cshandoff.modules.handoffs.status import is_resolved
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.realtime.changes import ChangeEvent, ChangeFeed
from cshandoff.modules.sms.alerts import record_alert
from cshandoff.screens.common import actor_info, handoff_card, reload_stream, run_action, update_item

router = APIRouter()

UPDATE_MIN_LENGTH = 2

DETAIL_TOPICS = (
    ("handoffs", "UPDATE"),
    ("handoff_updates", "INSERT"),
)


class NewUpdate(BaseModel):
    message: str = ""


async def load_detail(store: HandoffStore, actor: Actor, profile: Profile, handoff_id: UUID) -> dict:
    state = {
        "actor": actor_info(actor, profile),
        "handoff": None,
        "updates": [],
        "can_resolve": False,
        "error": None,
        "toast": None,
    }
    try:
        handoff = await store.get_handoff(actor, handoff_id)
        updates = await store.list_updates(actor, handoff_id)
    except HandoffError as e:
        state["error"] = e.message
        return state
    state["handoff"] = handoff_card(handoff)
    state["updates"] = [update_item(u) for u in updates]
    state["can_resolve"] = not is_resolved(handoff.status)
    return state


@router.get("/{handoff_id}")
async def detail(
    handoff_id: UUID,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
):
    return await load_detail(store, actor, profile, handoff_id)


@router.post("/{handoff_id}/updates")
async def add_update(
    handoff_id: UUID,
    body: NewUpdate,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
):
    async def action() -> str:
        message = body.message.strip()
        if len(message) < UPDATE_MIN_LENGTH:
            raise ValidationFailed(f"Updates need at least {UPDATE_MIN_LENGTH} characters.")
        await store.append_update(
            actor, handoff_id, message, source="app", author_display_name=profile.display_name,
        )
        return "Update added."

    return await run_action(action, lambda: load_detail(store, actor, profile, handoff_id))


@router.post("/{handoff_id}/resolve")
async def resolve(
    handoff_id: UUID,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
):
    async def action() -> str:
        current = await store.get_handoff(actor, handoff_id)
        if is_resolved(current.status):
            raise ValidationFailed("Already resolved.")
        await store.resolve(actor, handoff_id, profile.display_name)
        return "Marked resolved."

    return await run_action(action, lambda: load_detail(store, actor, profile, handoff_id))


@router.post("/{handoff_id}/sms-alert")
async def sms_alert(
    handoff_id: UUID,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
    http: httpx.AsyncClient = Depends(get_http),
    settings: Settings = Depends(settings_dep),
):
    async def action() -> str:
        current = await store.get_handoff(actor, handoff_id)
        alerted = await record_alert(
            store, http, settings, current.id, current.summary, current.priority, current.location_code,
        )
        if not alerted:
            return f"No alert sent for {current.priority} priority."
        return "SMS alert sent."

    return await run_action(action, lambda: load_detail(store, actor, profile, handoff_id))


@router.get("/{handoff_id}/events")
async def detail_events(
    request: Request,
    handoff_id: UUID,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
    changes: ChangeFeed = Depends(get_changes),
):
    """Server-sent events: this handoff again whenever it or its updates change."""
    target = str(handoff_id)

    def concerns_this_handoff(event: ChangeEvent) -> bool:
        if event.table == "handoffs":
            return event.record_id == target
        return event.handoff_id == target

    stream = reload_stream(
        request,
        changes.subscribe(*DETAIL_TOPICS),
        lambda: load_detail(store, actor, profile, handoff_id),
        accept=concerns_this_handoff,
    )
    return StreamingResponse(stream, media_type="text/event-stream")
