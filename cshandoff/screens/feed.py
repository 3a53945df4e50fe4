"""Feed screen: every visible handoff, unresolved first."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from cshandoff.deps import get_changes, get_handoff_store, require_actor, require_profile
from cshandoff.errors import HandoffError
from cshandoff.models.profile import Actor, Profile
from cshandoff.modules.handoffs.feed import visible_feed
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.realtime.changes import ChangeFeed
from cshandoff.screens.common import actor_info, handoff_card, reload_stream

router = APIRouter()

FEED_TOPICS = (
    ("handoffs", "INSERT"),
    ("handoffs", "UPDATE"),
    ("handoff_updates", "INSERT"),
)


async def load_feed(store: HandoffStore, actor: Actor, profile: Profile, show_resolved: bool) -> dict:
    state = {
        "actor": actor_info(actor, profile),
        "show_resolved": show_resolved,
        "handoffs": [],
        "error": None,
    }
    try:
        handoffs = await store.list_handoffs(actor)
    except HandoffError as e:
        state["error"] = e.message
        return state
    state["handoffs"] = [handoff_card(h) for h in visible_feed(handoffs, show_resolved)]
    return state


@router.get("/")
async def feed(
    show_resolved: bool = False,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
):
    return await load_feed(store, actor, profile, show_resolved)


@router.get("/events/feed")
async def feed_events(
    request: Request,
    show_resolved: bool = False,
    actor: Actor = Depends(require_actor),
    profile: Profile = Depends(require_profile),
    store: HandoffStore = Depends(get_handoff_store),
    changes: ChangeFeed = Depends(get_changes),
):
    """Server-sent events: the whole feed again whenever a handoff or update changes."""
    stream = reload_stream(
        request,
        changes.subscribe(*FEED_TOPICS),
        lambda: load_feed(store, actor, profile, show_resolved),
    )
    return StreamingResponse(stream, media_type="text/event-stream")
