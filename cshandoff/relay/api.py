"""
Relay endpoints: stateless handlers reached without an interactive session.
SMS webhooks are protected by a shared secret header; the resolve relay takes
a user's bearer token and writes as that user.
"""

import json
import logging
import secrets

import httpx
from fastapi import APIRouter, Depends, Request

from cshandoff.config import Settings
from cshandoff.deps import (
    bearer_token,
    get_auth_client,
    get_handoff_store,
    get_http,
    get_profile_store,
    settings_dep,
)
from cshandoff.errors import NotFound, Unauthenticated, Unauthorized, ValidationFailed
from cshandoff.modules.auth.client import AuthClient
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.profiles.store import ProfileStore
from cshandoff.modules.sms.alerts import SYSTEM_AUTHOR, record_alert
from cshandoff.modules.sms.tokens import extract_token
from cshandoff.modules.sms.twilio import InboundSms

router = APIRouter()
logger = logging.getLogger(__name__)

SECRET_HEADER = "x-webhook-secret"


def check_secret(request: Request, settings: Settings) -> None:
    expected = settings.sms_webhook_secret
    if not expected:
        return
    got = request.headers.get(SECRET_HEADER) or ""
    if not secrets.compare_digest(got.encode(), expected.encode()):
        raise Unauthorized("Unauthorized")


async def read_payload(request: Request) -> dict:
    """JSON bodies as-is; anything else is treated as a form post (Twilio)."""
    content_type = request.headers.get("content-type") or ""
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationFailed("Request body is not valid JSON") from e
        if not isinstance(payload, dict):
            raise ValidationFailed("Request body must be a JSON object")
        return payload
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


@router.post("/sms/inbound")
async def inbound_sms(
    request: Request,
    settings: Settings = Depends(settings_dep),
    store: HandoffStore = Depends(get_handoff_store),
):
    """Append an SMS reply to a handoff, addressed by id or by an H:<token> in the body."""
    check_secret(request, settings)
    sms = InboundSms.from_payload(await read_payload(request))

    if not sms.message:
        raise ValidationFailed("message is required")

    handoff_id = sms.handoff_id
    if not handoff_id:
        token = extract_token(sms.message)
        if not token:
            raise ValidationFailed("Missing token. Include e.g. H:ABC123 in reply.")
        handoff_id = await store.lookup_token(token)
        if not handoff_id:
            raise NotFound("Unknown token.")

    await store.append_update(
        None,
        handoff_id,
        sms.message,
        source="sms",
        author_display_name=sms.author_snapshot,
    )
    logger.info("Inbound SMS from %s appended to handoff %s", sms.sender or "unknown", handoff_id)
    return {"ok": True}


@router.post("/sms/notify")
async def notify_alert(
    request: Request,
    settings: Settings = Depends(settings_dep),
    store: HandoffStore = Depends(get_handoff_store),
    http: httpx.AsyncClient = Depends(get_http),
):
    """Audit (and, when configured, text out) an alert for a newly created high-priority handoff."""
    check_secret(request, settings)
    body = await read_payload(request)

    handoff_id = body.get("handoff_id")
    priority = body.get("priority")
    if not handoff_id or not priority:
        raise ValidationFailed("handoff_id and priority are required")

    try:
        alerted = await record_alert(
            store,
            http,
            settings,
            handoff_id,
            summary=body.get("summary"),
            priority=priority,
            location_code=body.get("location_code"),
        )
    except NotFound as e:
        # Unknown or malformed handoff id is a bad request here, not a missing resource
        raise ValidationFailed(e.message) from e
    if not alerted:
        return {"ok": True, "skipped": True}
    return {"ok": True, "alerted": True}


@router.post("/handoff/resolve")
async def resolve_handoff(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    store: HandoffStore = Depends(get_handoff_store),
    profiles: ProfileStore = Depends(get_profile_store),
):
    """Resolve on behalf of the bearer-token user, then append a system audit note."""
    token = bearer_token(request)
    if not token:
        raise Unauthenticated("Missing bearer token")
    actor = await auth.get_user(token)

    body = await read_payload(request)
    handoff_id = body.get("handoff_id")
    if not handoff_id:
        raise ValidationFailed("handoff_id required")

    profile = await profiles.get_profile(actor)
    display_name = profile.display_name if profile else None
    await store.resolve(actor, handoff_id, display_name)

    await store.append_update(
        None,
        handoff_id,
        f"SYSTEM: RESOLVED by {actor.label}",
        source="system",
        author_display_name=SYSTEM_AUTHOR,
    )
    return {"ok": True}
