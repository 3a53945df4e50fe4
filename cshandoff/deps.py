"""
FastAPI dependencies: runtime clients are built once in the app lifespan and
handed to routes from app.state. Tests swap them with app.dependency_overrides.
"""

import logging

import httpx
from fastapi import Depends, Request

from cshandoff.config import Settings, get_settings
from cshandoff.database import Database
from cshandoff.errors import BackendError, Unauthenticated
from cshandoff.models.profile import Actor, Profile
from cshandoff.modules.auth.client import AuthClient
from cshandoff.modules.handoffs.enums import EnumCatalog
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.profiles.store import ProfileStore
from cshandoff.modules.realtime.changes import ChangeFeed

logger = logging.getLogger(__name__)


class ScreenRedirect(Exception):
    """Raised by screen guards; rendered as a 303 to `location`."""

    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


def settings_dep() -> Settings:
    return get_settings()


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_changes(request: Request) -> ChangeFeed:
    return request.app.state.changes


def get_auth_client(request: Request) -> AuthClient:
    return request.app.state.auth


def get_handoff_store(db: Database = Depends(get_db)) -> HandoffStore:
    return HandoffStore(db)


def get_profile_store(db: Database = Depends(get_db)) -> ProfileStore:
    return ProfileStore(db)


def get_enum_catalog(db: Database = Depends(get_db)) -> EnumCatalog:
    return EnumCatalog(db)


def bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


async def current_actor(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(settings_dep),
) -> Actor | None:
    """The signed-in actor from the bearer header or session cookie, or None."""
    token = bearer_token(request) or request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    try:
        return await auth.get_user(token)
    except Unauthenticated:
        logger.info("Rejected stale or invalid session token")
        return None
    except BackendError as e:
        # Treated as signed out; the sign-in screen shows the outage inline.
        logger.warning("Session lookup failed: %s", e.message)
        request.state.auth_error = e.message
        return None


async def require_actor(actor: Actor | None = Depends(current_actor)) -> Actor:
    if actor is None:
        raise ScreenRedirect("/auth")
    return actor


async def require_profile(
    actor: Actor = Depends(require_actor),
    profiles: ProfileStore = Depends(get_profile_store),
) -> Profile:
    """Onboarding gate: no handoff data until the profile is complete."""
    profile = await profiles.get_profile(actor)
    if profile is None or not profile.is_complete:
        raise ScreenRedirect("/onboarding")
    return profile
