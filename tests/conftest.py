from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from cshandoff.config import Settings
from cshandoff.deps import (
    current_actor,
    get_auth_client,
    get_enum_catalog,
    get_handoff_store,
    get_http,
    get_profile_store,
    settings_dep,
)
from cshandoff.errors import NotFound, SilentWriteRejection, Unauthenticated
from cshandoff.main import create_app
from cshandoff.models.handoff import Handoff, HandoffUpdate
from cshandoff.models.profile import Actor, Profile
from cshandoff.modules.auth.client import AuthSession
from cshandoff.modules.handoffs.enums import DEFAULT_PRIORITIES, EnumOptions
from cshandoff.modules.handoffs.status import OPEN, RESOLVED
from cshandoff.modules.profiles.store import clean_profile_fields

BASE_TIME = datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc)


class Clock:
    """Strictly increasing timestamps so ordering assertions are deterministic."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def now(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FakeHandoffStore:
    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()
        self.handoffs: dict[UUID, Handoff] = {}
        self.updates: list[HandoffUpdate] = []
        self.tokens: dict[str, UUID] = {}
        self.calls: list[str] = []
        self.reject_writes = False

    def add_handoff(self, **fields) -> Handoff:
        data = {
            "id": uuid4(),
            "created_at": self.clock.now(),
            "summary": "Autoclave 3 down",
            "category": "equipment",
            "priority": "medium",
            "location_code": "CS",
            "status": OPEN,
        }
        data.update(fields)
        handoff = Handoff(**data)
        self.handoffs[handoff.id] = handoff
        return handoff

    async def list_handoffs(self, actor):
        self.calls.append("list_handoffs")
        return sorted(
            self.handoffs.values(),
            key=lambda h: (h.last_update_at is not None, h.effective_at),
            reverse=True,
        )

    async def get_handoff(self, actor, handoff_id):
        self.calls.append("get_handoff")
        handoff = self.handoffs.get(UUID(str(handoff_id)))
        if handoff is None:
            raise NotFound(f"Handoff {handoff_id} not found")
        return handoff

    async def list_updates(self, actor, handoff_id):
        self.calls.append("list_updates")
        hid = UUID(str(handoff_id))
        return sorted((u for u in self.updates if u.handoff_id == hid), key=lambda u: u.created_at, reverse=True)

    async def create_handoff(self, actor, summary, category, priority, location_code, display_name=None):
        self.calls.append("create_handoff")
        handoff = self.add_handoff(
            summary=summary,
            category=category,
            priority=priority,
            location_code=location_code,
            status=OPEN,
            created_by=actor.user_id,
            created_by_display_name_snapshot=display_name,
        )
        return handoff.id

    async def append_update(self, actor, handoff_id, message, source, author_display_name=None):
        self.calls.append("append_update")
        hid = UUID(str(handoff_id))
        if hid not in self.handoffs:
            raise NotFound(f"Handoff {handoff_id} not found")
        update = HandoffUpdate(
            id=uuid4(),
            created_at=self.clock.now(),
            handoff_id=hid,
            author_user_id=actor.user_id if actor else None,
            author_display_name_snapshot=author_display_name,
            source=source,
            message=message,
        )
        self.updates.append(update)
        self.handoffs[hid] = self.handoffs[hid].model_copy(
            update={"last_update_at": update.created_at, "last_update_by_snapshot": author_display_name}
        )

    async def resolve(self, actor, handoff_id, display_name=None):
        self.calls.append("resolve")
        if self.reject_writes:
            raise SilentWriteRejection("0 rows updated. Access control is blocking UPDATE on handoffs for this user.")
        hid = UUID(str(handoff_id))
        if hid not in self.handoffs:
            raise SilentWriteRejection("0 rows updated.")
        resolved = self.handoffs[hid].model_copy(
            update={"status": RESOLVED, "last_update_at": self.clock.now(), "last_update_by_snapshot": display_name}
        )
        self.handoffs[hid] = resolved
        return resolved

    async def lookup_token(self, token):
        self.calls.append("lookup_token")
        return self.tokens.get(token)

    async def create_token(self, handoff_id):
        self.calls.append("create_token")
        for token, hid in self.tokens.items():
            if hid == UUID(str(handoff_id)):
                return token
        token = f"T{len(self.tokens):05d}"
        self.tokens[token] = UUID(str(handoff_id))
        return token

    def updates_for(self, handoff_id) -> list[HandoffUpdate]:
        return [u for u in self.updates if u.handoff_id == handoff_id]


class FakeProfileStore:
    def __init__(self):
        self.profiles: dict[UUID, Profile] = {}
        self.calls: list[str] = []

    async def get_profile(self, actor):
        self.calls.append("get_profile")
        return self.profiles.get(actor.user_id)

    async def upsert_profile(self, actor, display_name, role, shift):
        self.calls.append("upsert_profile")
        dn, r, s = clean_profile_fields(display_name, role, shift)
        profile = Profile(user_id=actor.user_id, display_name=dn, role=r, shift=s)
        self.profiles[actor.user_id] = profile
        return profile


class FakeEnumCatalog:
    def __init__(self, categories=("general", "equipment", "supplies"), priorities=DEFAULT_PRIORITIES):
        self._categories = EnumOptions(tuple(categories), "general" if "general" in categories else None)
        self._priorities = EnumOptions(tuple(priorities), "medium")

    async def categories(self, actor):
        return self._categories

    async def priorities(self, actor):
        return self._priorities


class FakeAuthClient:
    def __init__(self):
        self.magic_links: list[tuple[str, str | None]] = []
        self.signed_out: list[str] = []

    async def send_magic_link(self, email, redirect_to=None):
        self.magic_links.append((email, redirect_to))

    async def verify_otp(self, token_hash, otp_type="magiclink"):
        if token_hash != "good-hash":
            raise Unauthenticated("Email link is invalid or has expired")
        actor = Actor(user_id=uuid4(), email="km@hospital.org", access_token="fresh-token")
        return AuthSession(access_token="fresh-token", refresh_token="r", expires_in=3600, actor=actor)

    async def get_user(self, access_token):
        raise Unauthenticated("Invalid session")

    async def sign_out(self, access_token):
        self.signed_out.append(access_token)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(clock) -> FakeHandoffStore:
    return FakeHandoffStore(clock)


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=uuid4(), email="km@hospital.org", access_token="token-km")


@pytest.fixture
def onboarded(actor, profiles) -> Profile:
    profile = Profile(user_id=actor.user_id, display_name="KM", role="CS", shift="AM")
    profiles.profiles[actor.user_id] = profile
    return profile


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, sms_webhook_secret="s3cret")


@pytest.fixture
def sent_sms() -> list[httpx.Request]:
    return []


@pytest.fixture
def http(sent_sms) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent_sms.append(request)
        return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def auth() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture
def app(store, profiles, settings, http, auth):
    app = create_app()
    app.dependency_overrides[get_handoff_store] = lambda: store
    app.dependency_overrides[get_profile_store] = lambda: profiles
    app.dependency_overrides[get_enum_catalog] = lambda: FakeEnumCatalog()
    app.dependency_overrides[settings_dep] = lambda: settings
    app.dependency_overrides[get_http] = lambda: http
    app.dependency_overrides[get_auth_client] = lambda: auth
    app.dependency_overrides[current_actor] = lambda: None
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def signed_in(app, actor) -> Actor:
    app.dependency_overrides[current_actor] = lambda: actor
    return actor


class FakeConnection:
    """Stands in for an asyncpg connection: records queries and replays canned results."""

    def __init__(self, results=None, error: Exception | None = None):
        self.results = list(results or [])
        self.error = error
        self.queries: list[tuple[str, tuple]] = []

    def _next(self, args, query):
        self.queries.append((query, args))
        if self.error is not None:
            raise self.error
        return self.results.pop(0) if self.results else None

    async def fetch(self, query, *args):
        return self._next(args, query) or []

    async def fetchrow(self, query, *args):
        return self._next(args, query)

    async def fetchval(self, query, *args):
        return self._next(args, query)

    async def execute(self, query, *args):
        self._next(args, query)
        return "INSERT 0 1"


class FakeDatabase:
    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.actors: list = []

    @asynccontextmanager
    async def session(self, actor=None):
        self.actors.append(actor)
        yield self.conn
