"""
Shared screen plumbing: record presentation, inline error handling and the
reload-on-change event stream.
"""

import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import Request
from fastapi.encoders import jsonable_encoder

from cshandoff.errors import HandoffError
from cshandoff.models.handoff import Handoff, HandoffUpdate
from cshandoff.models.profile import Actor, Profile
from cshandoff.modules.handoffs.status import card_treatment, normalize_status, status_label
from cshandoff.modules.realtime.changes import ChangeEvent, Subscription

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[dict]]


def handoff_card(h: Handoff) -> dict:
    treatment = card_treatment(h.status, h.priority)
    return {
        **h.model_dump(mode="json"),
        "status": normalize_status(h.status),
        "status_label": status_label(h.status),
        "effective_at": h.effective_at.isoformat(),
        "treatment": {"name": treatment.name, "style": treatment.style, "pulse": treatment.pulse},
    }


def update_item(u: HandoffUpdate) -> dict:
    data = u.model_dump(mode="json")
    data["source_label"] = u.source.upper()
    return data


def actor_info(actor: Actor, profile: Profile | None = None) -> dict:
    return {
        "user_id": str(actor.user_id),
        "email": actor.email,
        "display_name": profile.display_name if profile else None,
        "shift": profile.shift if profile else None,
    }


async def run_action(action: Callable[[], Awaitable[str | None]], reload: Loader) -> dict:
    """Run a state-changing action, then re-load the whole screen and attach the outcome."""
    toast = None
    error = None
    try:
        toast = await action()
    except HandoffError as e:
        logger.info("Screen action failed: %s", e.message)
        error = e.message
    state = await reload()
    state["toast"] = toast
    if error:
        state["error"] = error
    return state


def sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(jsonable_encoder(data))}\n\n"


async def reload_stream(
    request: Request,
    subscription: Subscription,
    load: Loader,
    accept: Callable[[ChangeEvent], bool] | None = None,
) -> AsyncIterator[str]:
    """Push a full re-load of the screen for every matching change until the client leaves."""
    async with subscription:
        async for event in subscription:
            if accept is not None and not accept(event):
                continue
            if await request.is_disconnected():
                break
            yield sse("reload", await load())
