from uuid import uuid4

import asyncpg
import pytest
from conftest import FakeConnection, FakeDatabase

from cshandoff.deps import get_auth_client, get_handoff_store
from cshandoff.errors import Unauthenticated
from cshandoff.models.profile import Actor
from cshandoff.modules.handoffs.store import HandoffStore

SECRET = {"x-webhook-secret": "s3cret"}


def test_inbound_token_appends_sms_update(client, store):
    handoff = store.add_handoff()
    store.tokens["AB12"] = handoff.id

    resp = client.post(
        "/api/sms/inbound",
        json={"message": "Update: all clear H:AB12", "from": "+15550001111"},
        headers=SECRET,
    )

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    updates = store.updates_for(handoff.id)
    assert len(updates) == 1
    assert updates[0].source == "sms"
    assert updates[0].message == "Update: all clear H:AB12"
    assert updates[0].author_display_name_snapshot == "sms:+15550001111"


def test_inbound_twilio_form_post(client, store):
    handoff = store.add_handoff()
    store.tokens["ZX9Q"] = handoff.id

    resp = client.post(
        "/api/sms/inbound",
        data={"Body": "  H:ZX9Q done  ", "From": "+15550002222"},
        headers=SECRET,
    )

    assert resp.status_code == 200
    assert store.updates_for(handoff.id)[0].message == "H:ZX9Q done"


def test_inbound_without_token_is_bad_request(client, store):
    store.add_handoff()

    resp = client.post("/api/sms/inbound", json={"message": "all clear"}, headers=SECRET)

    assert resp.status_code == 400
    assert "H:ABC123" in resp.json()["error"]
    assert store.updates == []


def test_inbound_unknown_token_is_not_found(client, store):
    resp = client.post("/api/sms/inbound", json={"message": "ok H:NOPE99"}, headers=SECRET)

    assert resp.status_code == 404
    assert resp.json() == {"error": "Unknown token."}
    assert store.updates == []


def test_inbound_direct_handoff_id(client, store):
    handoff = store.add_handoff()

    resp = client.post(
        "/api/sms/inbound",
        json={"handoffId": str(handoff.id), "message": "Still pending"},
        headers=SECRET,
    )

    assert resp.status_code == 200
    assert store.updates_for(handoff.id)[0].author_display_name_snapshot == "sms"


def test_inbound_missing_message(client):
    resp = client.post("/api/sms/inbound", json={"handoff_id": str(uuid4())}, headers=SECRET)
    assert resp.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"x-webhook-secret": "wrong"}])
def test_secret_mismatch_is_unauthorized(client, store, headers):
    handoff = store.add_handoff()
    store.tokens["AB12"] = handoff.id

    resp = client.post("/api/sms/inbound", json={"message": "H:AB12"}, headers=headers)

    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}
    assert store.updates == []


def test_secret_not_required_when_unset(client, store, settings):
    settings.sms_webhook_secret = ""
    handoff = store.add_handoff()
    store.tokens["AB12"] = handoff.id

    assert client.post("/api/sms/inbound", json={"message": "H:AB12"}).status_code == 200


def test_notify_medium_is_skipped(client, store):
    handoff = store.add_handoff(priority="medium")

    resp = client.post(
        "/api/sms/notify",
        json={"handoff_id": str(handoff.id), "summary": "Cart late", "priority": "medium"},
        headers=SECRET,
    )

    assert resp.json() == {"ok": True, "skipped": True}
    assert store.updates == []


def test_notify_high_appends_one_system_update(client, store):
    handoff = store.add_handoff(priority="high")
    summary = "S" * 200

    resp = client.post(
        "/api/sms/notify",
        json={"handoff_id": str(handoff.id), "summary": summary, "priority": "HIGH", "location_code": "OR"},
        headers=SECRET,
    )

    assert resp.json() == {"ok": True, "alerted": True}
    updates = store.updates_for(handoff.id)
    assert len(updates) == 1
    assert updates[0].source == "system"
    assert updates[0].author_display_name_snapshot == "system"
    assert updates[0].message == "SYSTEM: SMS ALERT TRIGGERED (high) [OR]: " + "S" * 120


def test_notify_requires_fields(client):
    resp = client.post("/api/sms/notify", json={"summary": "x"}, headers=SECRET)
    assert resp.status_code == 400
    assert resp.json() == {"error": "handoff_id and priority are required"}


@pytest.mark.parametrize(
    "handoff_id,error",
    [
        (str(uuid4()), asyncpg.ForeignKeyViolationError("violates foreign key constraint")),
        ("not-a-uuid", None),
    ],
)
def test_notify_bad_handoff_id_is_bad_request(app, client, handoff_id, error):
    conn = FakeConnection(error=error)
    app.dependency_overrides[get_handoff_store] = lambda: HandoffStore(FakeDatabase(conn))

    resp = client.post(
        "/api/sms/notify",
        json={"handoff_id": handoff_id, "summary": "Leak", "priority": "high"},
        headers=SECRET,
    )

    assert resp.status_code == 400
    assert "not found" in resp.json()["error"]


def test_notify_checks_secret(client, store):
    handoff = store.add_handoff(priority="high")
    resp = client.post("/api/sms/notify", json={"handoff_id": str(handoff.id), "priority": "high"})
    assert resp.status_code == 401
    assert store.updates == []


class StubAuth:
    def __init__(self, actor: Actor | None):
        self.actor = actor

    async def get_user(self, token):
        if self.actor is None or token != self.actor.access_token:
            raise Unauthenticated("Invalid session")
        return self.actor


def test_resolve_relay_requires_bearer(app, client):
    app.dependency_overrides[get_auth_client] = lambda: StubAuth(None)
    assert client.post("/api/handoff/resolve", json={"handoff_id": str(uuid4())}).status_code == 401


def test_resolve_relay_resolves_and_audits(app, client, store, actor, onboarded):
    app.dependency_overrides[get_auth_client] = lambda: StubAuth(actor)
    handoff = store.add_handoff()

    resp = client.post(
        "/api/handoff/resolve",
        json={"handoff_id": str(handoff.id)},
        headers={"Authorization": f"Bearer {actor.access_token}"},
    )

    assert resp.json() == {"ok": True}
    assert store.handoffs[handoff.id].status == "resolved"
    assert store.handoffs[handoff.id].last_update_by_snapshot == "system"
    assert store.updates_for(handoff.id)[0].message == "SYSTEM: RESOLVED by km@hospital.org"


def test_resolve_relay_surfaces_silent_rejection(app, client, store, actor):
    app.dependency_overrides[get_auth_client] = lambda: StubAuth(actor)
    store.reject_writes = True
    handoff = store.add_handoff()

    resp = client.post(
        "/api/handoff/resolve",
        json={"handoff_id": str(handoff.id)},
        headers={"Authorization": f"Bearer {actor.access_token}"},
    )

    assert resp.status_code == 403
    assert "0 rows updated" in resp.json()["error"]
    assert store.updates == []
