"""Pytest fixtures for TrendClaw tests."""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import AsyncIterator, Callable, Generator, Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from trendclaw.config import Settings
from trendclaw.gateway.client import GatewayClient
from trendclaw.gateway.identity import DeviceIdentity
from trendclaw.models import JOB_TYPE_CLIENT, JOB_TYPE_NICHE, Base, Client, MonitoringJob, Niche

# Test database URL - in-memory SQLite unless a real database is provided
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

WEBHOOK_TOKEN = "hook-secret"

_CLOSE = object()

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, handshake_ok: bool | None = True, responder: Responder | None = None) -> None:
        self.handshake_ok = handshake_ok
        self.responder = responder
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        if frame.get("method") == "connect":
            if self.handshake_ok is True:
                self.push({"type": "res", "id": frame["id"], "ok": True, "payload": {"type": "hello-ok"}})
            elif self.handshake_ok is False:
                self.push(
                    {"type": "res", "id": frame["id"], "ok": False, "error": {"message": "device not paired"}}
                )
            return
        if self.responder is not None:
            reply = self.responder(frame)
            if reply is not None:
                self.push(reply)

    def push(self, frame: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the remote side closing the socket."""
        self._incoming.put_nowait(_CLOSE)

    @property
    def requests(self) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("method") != "connect"]

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Callable matching ``websockets.connect`` that hands out FakeWebSockets."""

    def __init__(self) -> None:
        self.calls = 0
        self.sockets: list[FakeWebSocket] = []
        self.fail_with: Exception | None = None
        self.handshake_ok: bool | None = True
        self.responder: Responder | None = None

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        ws = FakeWebSocket(self.handshake_ok, self.responder)
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


def ok_response(frame: dict[str, Any], result: Any) -> dict[str, Any]:
    return {"type": "res", "id": frame["id"], "ok": True, "result": result}


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


@pytest.fixture(scope="session")
def engine():
    """Create test database engine."""
    options: dict[str, Any] = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    engine = create_engine(TEST_DATABASE_URL, **options)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    """Provide a transactional scope around each test."""
    connection = engine.connect()
    transaction = connection.begin()

    session_local = sessionmaker(bind=connection)
    session = session_local()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(db_session: Session) -> Callable[[], Any]:
    """Stand-in for ``get_db`` that reuses the rolled-back test session."""

    @contextmanager
    def scope() -> Iterator[Session]:
        yield db_session
        db_session.flush()

    return scope


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        backend_url="https://api.trendclaw.test",
        openclaw_gateway_url="ws://gateway.test:18789",
        openclaw_webhook_token=WEBHOOK_TOKEN,
        allow_unauthenticated_webhooks=False,
    )


@pytest.fixture
def identity() -> DeviceIdentity:
    return DeviceIdentity.generate()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def gateway(identity: DeviceIdentity, connector: FakeConnector) -> GatewayClient:
    return GatewayClient(
        "ws://gateway.test:18789",
        identity,
        "gw-token",
        handshake_timeout=0.5,
        request_timeout=0.5,
        reconnect_delay=0.05,
        connector=connector,
    )


@pytest.fixture
async def connected_gateway(gateway: GatewayClient) -> AsyncIterator[GatewayClient]:
    await gateway.connect()
    yield gateway
    await gateway.disconnect()


@pytest.fixture
def sample_client(db_session: Session) -> Client:
    """Create a sample monitored company."""
    client = Client(
        tenant_id=uuid4(),
        name="Acme Robotics",
        domain="acmerobotics.io",
        industry="Industrial automation",
        description="Warehouse robots for mid-size retailers",
        linkedin_url="https://www.linkedin.com/company/acme-robotics",
        twitter_url="https://x.com/acmerobotics",
        custom_urls=["https://acmerobotics.io/blog"],
        keywords=["warehouse automation", "series b"],
        monitor_signals=["funding", "hiring"],
        is_active=True,
    )
    db_session.add(client)
    db_session.flush()
    return client


@pytest.fixture
def sample_niche(db_session: Session) -> Niche:
    """Create a sample monitored topic."""
    niche = Niche(
        tenant_id=uuid4(),
        name="Agentic coding",
        keywords=["AI agents", "code generation"],
        sources=["news.ycombinator.com", "reddit.com/r/programming"],
        is_active=True,
    )
    db_session.add(niche)
    db_session.flush()
    return niche


@pytest.fixture
def client_job(db_session: Session, sample_client: Client) -> MonitoringJob:
    job = MonitoringJob(
        tenant_id=sample_client.tenant_id,
        cron_job_id="cron-client-1",
        job_type=JOB_TYPE_CLIENT,
        target_id=sample_client.id,
        schedule="every:12h",
    )
    sample_client.cron_job_id = job.cron_job_id
    db_session.add(job)
    db_session.flush()
    return job


@pytest.fixture
def niche_job(db_session: Session, sample_niche: Niche) -> MonitoringJob:
    job = MonitoringJob(
        tenant_id=sample_niche.tenant_id,
        cron_job_id="cron-niche-1",
        job_type=JOB_TYPE_NICHE,
        target_id=sample_niche.id,
        schedule="every:12h",
    )
    sample_niche.cron_job_id = job.cron_job_id
    db_session.add(job)
    db_session.flush()
    return job
