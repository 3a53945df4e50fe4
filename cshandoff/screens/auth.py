"""Sign-in screen: magic link request, link callback and sign-out."""

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from cshandoff.config import Settings
from cshandoff.deps import bearer_token, current_actor, get_auth_client, settings_dep
from cshandoff.errors import HandoffError, ValidationFailed
from cshandoff.models.profile import Actor
from cshandoff.modules.auth.client import AuthClient

router = APIRouter()
logger = logging.getLogger(__name__)


class MagicLinkRequest(BaseModel):
    email: str = ""


def validate_email(email: str) -> str:
    e = (email or "").strip()
    if "@" not in e or "." not in e:
        raise ValidationFailed("Enter a valid email address.")
    return e


@router.get("")
async def auth_screen(request: Request, actor: Actor | None = Depends(current_actor)):
    return {
        "signed_in": actor is not None,
        "email": actor.email if actor else None,
        "message": None,
        "error": getattr(request.state, "auth_error", None),
    }


@router.post("/magic-link")
async def send_magic_link(
    body: MagicLinkRequest,
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(settings_dep),
):
    state = {"signed_in": False, "email": None, "message": None, "error": None}
    try:
        email = validate_email(body.email)
        await auth.send_magic_link(email, redirect_to=f"{settings.site_url.rstrip('/')}/auth/callback")
    except HandoffError as e:
        state["error"] = e.message
        return state
    state["message"] = "Magic link sent. Check your email and open it on this device."
    return state


@router.get("/callback")
async def auth_callback(
    token_hash: str = "",
    otp_type: str = Query("magiclink", alias="type"),
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(settings_dep),
):
    if not token_hash:
        return {"signed_in": False, "email": None, "message": None, "error": "Missing sign-in token."}
    try:
        session = await auth.verify_otp(token_hash, otp_type)
    except HandoffError as e:
        return {"signed_in": False, "email": None, "message": None, "error": e.message}

    logger.info("Signed in %s", session.actor.label)
    response = RedirectResponse("/", status_code=303)
    response.set_cookie(
        settings.session_cookie_name,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/sign-out")
async def sign_out(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(settings_dep),
):
    token = bearer_token(request) or request.cookies.get(settings.session_cookie_name)
    if token:
        await auth.sign_out(token)
    response = RedirectResponse("/auth", status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response
