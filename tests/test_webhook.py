"""
Tests for the WhatsApp webhook endpoints.

Run: pytest tests/test_webhook.py -v
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from inbox_agent.api import webhook
from inbox_agent.config import settings
from inbox_agent.middleware.rate_limit import webhook_rate_limiter
from inbox_agent.models import WhatsAppConnection
from inbox_agent.services.ai_response_service import MEDIA_APOLOGY, run_agent_after_inbound
from inbox_agent.services.inbound_parser import parse_evolution_payload
from inbox_agent.services.message_router_service import MessageRouterService
from inbox_agent.services.supabase_client import get_supabase_client
from main import app
from tests.conftest import ScriptedProvider, seed_tenant

JID = "5511999999999@s.whatsapp.net"


def _evolution(text="Hi, is the store open?", jid=JID, push_name="Maria"):
    return {
        "event": "messages.upsert",
        "data": {
            "key": {"remoteJid": jid, "fromMe": False, "id": "3EB0ABC"},
            "pushName": push_name,
            "message": {"conversation": text},
        },
    }


@pytest.fixture
def agent_runs(monkeypatch):
    """Record agent runs scheduled by the webhook instead of running them"""
    runs = []

    async def no_op():
        return None

    def record(tenant_id, thread_id, supabase, provider=None):
        runs.append((tenant_id, thread_id))
        return no_op()

    monkeypatch.setattr(webhook, "run_agent_after_inbound", record)
    return runs


@pytest.fixture
def client(fake_supabase, agent_runs, monkeypatch):
    monkeypatch.setattr(settings, "APP_ENV", "development")
    app.dependency_overrides[get_supabase_client] = lambda: fake_supabase
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add_connection(db, tenant_id="tenant-1", secret="secret-1", **overrides):
    return db.add_row("whatsapp_connections", {
        "tenant_id": tenant_id,
        "provider": "evolution",
        "is_active": True,
        "instance_name": "store-main",
        "webhook_secret": secret,
        **overrides,
    })


class TestWebhookAuth:

    def test_unknown_secret(self, client, fake_supabase):
        _add_connection(fake_supabase)
        response = client.post("/api/webhooks/evolution", json=_evolution(), headers={"x-webhook-secret": "nope"})
        assert response.status_code == 401

    def test_missing_header_falls_back_to_single_connection(self, client, fake_supabase, agent_runs):
        _add_connection(fake_supabase)
        response = client.post("/api/webhooks/evolution", json=_evolution())
        assert response.status_code == 200
        assert response.json()["status"] == "received"
        assert len(agent_runs) == 1

    def test_missing_header_without_connections(self, client):
        response = client.post("/api/webhooks/evolution", json=_evolution())
        assert response.status_code == 404

    def test_missing_header_with_several_connections(self, client, fake_supabase):
        _add_connection(fake_supabase, secret="a")
        _add_connection(fake_supabase, tenant_id="tenant-2", secret="b")
        response = client.post("/api/webhooks/evolution", json=_evolution())
        assert response.status_code == 401

    def test_missing_header_in_production(self, client, fake_supabase, monkeypatch):
        monkeypatch.setattr(settings, "APP_ENV", "production")
        _add_connection(fake_supabase)
        response = client.post("/api/webhooks/evolution", json=_evolution())
        assert response.status_code == 401


class TestInboundRouting:

    def _post(self, client, payload, secret="secret-1"):
        return client.post("/api/webhooks/evolution", json=payload, headers={"x-webhook-secret": secret})

    def test_first_contact_creates_channel_thread_and_link(self, client, fake_supabase, agent_runs):
        connection = _add_connection(fake_supabase)

        response = self._post(client, _evolution())

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        thread = fake_supabase.rows("threads", id=body["thread_id"])[0]
        assert thread["subject"] == "Maria"
        assert thread["status"] == "open"
        channel = fake_supabase.rows("channels", id=thread["channel_id"])[0]
        assert channel["type"] == "whatsapp"
        link = fake_supabase.rows("whatsapp_thread_links")[0]
        assert link["connection_id"] == connection["id"]
        assert link["wa_contact_phone"] == "5511999999999"
        messages = fake_supabase.rows("messages", thread_id=body["thread_id"])
        assert [(m["sender_type"], m["content"]) for m in messages] == [("external", "Hi, is the store open?")]
        assert agent_runs == [("tenant-1", body["thread_id"])]

    def test_same_contact_reuses_thread(self, client, fake_supabase):
        _add_connection(fake_supabase)

        first = self._post(client, _evolution("first")).json()
        second = self._post(client, _evolution("second")).json()

        assert first["thread_id"] == second["thread_id"]
        assert len(fake_supabase.rows("threads")) == 1
        assert len(fake_supabase.rows("whatsapp_thread_links")) == 1
        assert len(fake_supabase.rows("messages")) == 2

    def test_duplicate_delivery_keeps_one_link(self, client, fake_supabase):
        _add_connection(fake_supabase)

        self._post(client, _evolution())
        self._post(client, _evolution())

        assert len(fake_supabase.rows("whatsapp_thread_links")) == 1
        assert len(fake_supabase.rows("channels", type="whatsapp")) == 1

    def test_subject_falls_back_to_phone(self, client, fake_supabase):
        _add_connection(fake_supabase)
        body = self._post(client, _evolution(push_name=None)).json()
        assert fake_supabase.rows("threads", id=body["thread_id"])[0]["subject"] == "5511999999999"

    def test_media_message_is_stored_as_placeholder(self, client, fake_supabase):
        _add_connection(fake_supabase)
        payload = _evolution()
        payload["data"]["message"] = {"audioMessage": {"seconds": 4}}

        body = self._post(client, payload).json()

        assert fake_supabase.rows("messages", thread_id=body["thread_id"])[0]["content"] == "[audio]"

    def test_usage_counters(self, client, fake_supabase):
        _add_connection(fake_supabase)
        self._post(client, _evolution("one"))
        self._post(client, _evolution("two"))

        counters = fake_supabase.rows("usage_counters", tenant_id="tenant-1")[0]
        assert counters["threads_count"] == 1
        assert counters["messages_count"] == 2

    def test_mock_provider_payload(self, client, fake_supabase):
        _add_connection(fake_supabase, provider="mock")
        body = self._post(client, {"wa_id": "5511777777777", "name": "Ana", "text": "Oi"}).json()
        assert fake_supabase.rows("messages", thread_id=body["thread_id"])[0]["content"] == "Oi"


class TestRouteAndReply:

    @pytest.mark.asyncio
    async def test_concurrent_first_contact_converges_on_one_thread(self, fake_supabase):
        connection = WhatsAppConnection(**_add_connection(fake_supabase))
        inbound = parse_evolution_payload(_evolution())
        missed = []
        both_missed = asyncio.Event()

        def racing_router():
            router = MessageRouterService(fake_supabase)
            get_link = router.whatsapp.get_link
            looked_up = []

            async def lookup_then_wait(*args):
                link = await get_link(*args)
                if not looked_up:
                    looked_up.append(True)
                    missed.append(link)
                    if len(missed) == 2:
                        both_missed.set()
                    await both_missed.wait()
                return link

            router.whatsapp.get_link = lookup_then_wait
            return router

        first, second = await asyncio.gather(
            racing_router().route_incoming_message(connection, inbound),
            racing_router().route_incoming_message(connection, inbound),
        )

        assert missed == [None, None]
        assert first["thread_id"] == second["thread_id"]
        assert [t["id"] for t in fake_supabase.rows("threads")] == [first["thread_id"]]
        assert len(fake_supabase.rows("whatsapp_thread_links")) == 1
        assert len(fake_supabase.rows("messages", thread_id=first["thread_id"])) == 2
        assert fake_supabase.rows("usage_counters", tenant_id="tenant-1")[0]["threads_count"] == 1

    @pytest.mark.asyncio
    async def test_empty_audio_gets_apology_without_provider(self, fake_supabase, delays, outbound_disabled):
        ids = seed_tenant(fake_supabase, channel_type="whatsapp", internal_enabled=False, whatsapp_enabled=True)
        connection = WhatsAppConnection(**_add_connection(fake_supabase, tenant_id=ids["tenant_id"]))
        payload = _evolution()
        payload["data"]["message"] = {"audioMessage": {}}
        provider = ScriptedProvider()

        routed = await MessageRouterService(fake_supabase).route_incoming_message(
            connection, parse_evolution_payload(payload)
        )
        result = await run_agent_after_inbound(ids["tenant_id"], routed["thread_id"], fake_supabase,
                                               provider=provider)

        replies = fake_supabase.rows("messages", thread_id=routed["thread_id"], sender_type="ai")
        assert fake_supabase.rows("messages", thread_id=routed["thread_id"])[0]["content"] == "[audio]"
        assert result["success"] is True
        assert provider.calls == []
        assert " ".join(m["content"] for m in replies).split() == MEDIA_APOLOGY.split()


class TestIgnoredPayloads:

    def _post(self, client, **kwargs):
        return client.post("/api/webhooks/evolution", headers={"x-webhook-secret": "secret-1"}, **kwargs)

    def test_own_message_echo(self, client, fake_supabase, agent_runs):
        _add_connection(fake_supabase)
        payload = _evolution()
        payload["data"]["key"]["fromMe"] = True

        response = self._post(client, json=payload)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert fake_supabase.rows("messages") == []
        assert agent_runs == []

    def test_invalid_json(self, client, fake_supabase):
        _add_connection(fake_supabase)
        response = client.post("/api/webhooks/evolution", content=b"not json", headers={
            "x-webhook-secret": "secret-1", "content-type": "application/json",
        })
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_storage_failure_still_acknowledged(self, client, fake_supabase, agent_runs):
        _add_connection(fake_supabase)
        fake_supabase.failures[("messages", "insert")] = RuntimeError("db down")

        response = self._post(client, json=_evolution())

        assert response.status_code == 200
        assert response.json() == {"success": False, "status": "error", "thread_id": None}
        assert agent_runs == []


class TestRateLimit:

    def test_429_after_limit(self, client, fake_supabase, monkeypatch):
        _add_connection(fake_supabase)
        monkeypatch.setattr(webhook_rate_limiter, "max_requests", 2)
        headers = {"x-webhook-secret": "secret-1", "x-forwarded-for": "203.0.113.9"}

        statuses = [
            client.post("/api/webhooks/evolution", json=_evolution(), headers=headers).status_code
            for _ in range(3)
        ]

        assert statuses == [200, 200, 429]
        limited = client.post("/api/webhooks/evolution", json=_evolution(), headers=headers)
        assert int(limited.headers["retry-after"]) >= 1

    def test_limit_is_per_client(self, client, fake_supabase, monkeypatch):
        _add_connection(fake_supabase)
        monkeypatch.setattr(webhook_rate_limiter, "max_requests", 1)

        first = client.post("/api/webhooks/evolution", json=_evolution(),
                            headers={"x-webhook-secret": "secret-1", "x-forwarded-for": "203.0.113.1"})
        second = client.post("/api/webhooks/evolution", json=_evolution(),
                             headers={"x-webhook-secret": "secret-1", "x-forwarded-for": "203.0.113.2"})

        assert first.status_code == 200
        assert second.status_code == 200


class TestVerification:

    def test_challenge_echoed(self, client, fake_supabase):
        connection = _add_connection(fake_supabase)
        response = client.get("/api/webhooks/evolution", params={
            "connection_id": connection["id"], "hub.verify_token": "secret-1", "hub.challenge": "987",
        })
        assert response.status_code == 200
        assert response.text == "987"

    def test_wrong_token(self, client, fake_supabase):
        connection = _add_connection(fake_supabase)
        response = client.get("/api/webhooks/evolution", params={
            "connection_id": connection["id"], "hub.verify_token": "bad", "hub.challenge": "987",
        })
        assert response.status_code == 403

    def test_unknown_connection(self, client):
        response = client.get("/api/webhooks/evolution", params={"connection_id": "missing"})
        assert response.status_code == 404
