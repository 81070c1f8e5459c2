"""
Pytest configuration and fixtures

Provides an in-memory stand-in for the supabase query builder, a scripted
text-generation provider and seeded tenants for agent runtime tests.
"""
import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from inbox_agent.config import settings
from inbox_agent.middleware.rate_limit import webhook_rate_limiter
from inbox_agent.services import ai_response_service
from inbox_agent.services.ai_provider import AIProvider, ProviderInput
from inbox_agent.services.thread_lease import active_runs, thread_leases


# ============================================
# FAKE SUPABASE
# ============================================

class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    """Chainable query mirroring the subset of postgrest used by the services"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self._op = "select"
        self._payload: Any = None
        self._filters: List[tuple] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._on_conflict = ""
        self._ignore_duplicates = False

    def select(self, *columns, **kwargs):
        self._op = "select"
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def update(self, payload):
        self._op, self._payload = "update", payload
        return self

    def upsert(self, payload, on_conflict: str = "", ignore_duplicates: bool = False, **kwargs):
        self._op, self._payload = "upsert", payload
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self._filters.append(("in", column, list(values)))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        for kind, column, value in self._filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self) -> FakeResponse:
        error = self.db.failures.get((self.table_name, self._op))
        if error is not None:
            raise error

        rows = self.db.tables.setdefault(self.table_name, [])

        if self._op == "select":
            result = [row for row in rows if self._matches(row)]
            if self._order:
                column, desc = self._order
                result = sorted(result, key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
            if self._limit is not None:
                result = result[:self._limit]
            return FakeResponse(copy.deepcopy(result))

        if self._op == "insert":
            payloads = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self.db.add_row(self.table_name, payload) for payload in payloads]
            return FakeResponse(copy.deepcopy(inserted))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(row)
            return FakeResponse(copy.deepcopy(updated))

        if self._op == "delete":
            removed = [row for row in rows if self._matches(row)]
            self.db.tables[self.table_name] = [row for row in rows if not self._matches(row)]
            return FakeResponse(copy.deepcopy(removed))

        if self._op == "upsert":
            keys = [k.strip() for k in self._on_conflict.split(",") if k.strip()]
            existing = next(
                (row for row in rows if keys and all(row.get(k) == self._payload.get(k) for k in keys)),
                None
            )
            if existing is None:
                return FakeResponse([copy.deepcopy(self.db.add_row(self.table_name, self._payload))])
            if self._ignore_duplicates:
                return FakeResponse([])
            existing.update(copy.deepcopy(self._payload))
            return FakeResponse([copy.deepcopy(existing)])

        raise AssertionError(f"Unsupported operation {self._op}")


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        error = self.db.failures.get(("rpc", self.name))
        if error is not None:
            raise error
        self.db.rpc_calls.append((self.name, dict(self.params)))
        if self.name == "increment_usage_counters":
            return FakeResponse([self.db.increment_usage(self.params)])
        return FakeResponse([])


class FakeSupabase:
    """In-memory tables keyed by name, with monotonically increasing timestamps"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_calls: List[tuple] = []
        self.failures: Dict[tuple, Exception] = {}
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def next_timestamp(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def add_row(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(payload)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self.next_timestamp())
        self.tables.setdefault(table, []).append(row)
        return row

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def increment_usage(self, params: Dict[str, Any]) -> Dict[str, Any]:
        rows = self.tables.setdefault("usage_counters", [])
        row = next(
            (r for r in rows if r["tenant_id"] == params["_tenant_id"] and r["period"] == params["_period"]),
            None
        )
        if row is None:
            row = self.add_row("usage_counters", {
                "tenant_id": params["_tenant_id"],
                "period": params["_period"],
                "messages_count": 0,
                "ai_messages_count": 0,
                "threads_count": 0,
            })
        row["messages_count"] += params["_messages_delta"]
        row["ai_messages_count"] += params["_ai_messages_delta"]
        row["threads_count"] += params["_threads_delta"]
        return dict(row)

    def rows(self, table: str, **filters) -> List[Dict[str, Any]]:
        return [
            row for row in self.tables.get(table, [])
            if all(row.get(k) == v for k, v in filters.items())
        ]


# ============================================
# PROVIDER
# ============================================

class ScriptedProvider(AIProvider):
    """Returns a fixed reply and records every prompt it receives"""

    def __init__(self, reply: str = "Hello! How can I help you today?", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[ProviderInput] = []

    async def generate_response(self, data: ProviderInput) -> str:
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return self.reply


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture(autouse=True)
def reset_runtime_state():
    """Fresh lease and run registries and rate limiter for every test"""
    thread_leases.reset()
    active_runs.reset()
    webhook_rate_limiter.reset()
    yield
    thread_leases.reset()
    active_runs.reset()
    webhook_rate_limiter.reset()


@pytest.fixture
def delays(monkeypatch):
    """Record pacing delays instead of sleeping"""
    recorded: List[int] = []

    async def fake_delay(ms: int) -> None:
        recorded.append(ms)

    monkeypatch.setattr(ai_response_service, "_delay", fake_delay)
    return recorded


@pytest.fixture
def outbound_disabled(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_WHATSAPP_OUTBOUND", False)


def seed_tenant(
    db: FakeSupabase,
    channel_type: str = "internal",
    agent_active: bool = True,
    internal_enabled: bool = True,
    whatsapp_enabled: bool = False,
    thread_status: str = "open",
    agent_settings: Optional[Dict[str, Any]] = None,
    messages: Optional[List[tuple]] = None,
) -> Dict[str, str]:
    """
    Seed one tenant with an agent, a channel and a thread.

    `messages` is a list of (sender_type, content) tuples appended in order.
    """
    tenant_id = str(uuid.uuid4())
    channel = db.add_row("channels", {"tenant_id": tenant_id, "type": channel_type, "name": channel_type.title()})
    thread = db.add_row("threads", {
        "tenant_id": tenant_id,
        "channel_id": channel["id"],
        "subject": "Customer question",
        "status": thread_status,
    })
    agent = db.add_row("ai_agents", {
        "tenant_id": tenant_id,
        "name": "Support Assistant",
        "is_active": agent_active,
        "system_prompt": "You are a friendly support assistant for our store.",
        "user_prompt": None,
    })
    db.add_row("ai_agent_channels", {
        "tenant_id": tenant_id, "agent_id": agent["id"], "channel_type": "internal", "is_enabled": internal_enabled,
    })
    db.add_row("ai_agent_channels", {
        "tenant_id": tenant_id, "agent_id": agent["id"], "channel_type": "whatsapp", "is_enabled": whatsapp_enabled,
    })
    if agent_settings is not None:
        db.add_row("ai_agent_settings", {"tenant_id": tenant_id, "agent_id": agent["id"], **agent_settings})

    for sender_type, content in messages or [("user", "Hi, is the store open today?")]:
        db.add_row("messages", {
            "tenant_id": tenant_id,
            "thread_id": thread["id"],
            "sender_type": sender_type,
            "content": content,
        })

    return {
        "tenant_id": tenant_id,
        "thread_id": thread["id"],
        "agent_id": agent["id"],
        "channel_id": channel["id"],
    }
