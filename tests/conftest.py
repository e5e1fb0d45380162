"""
Shared fixtures: file-backed SQLite database, fake clock, stub provider
and an HTTP client wired to them
"""
import os

os.environ.setdefault("API_KEY_BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COOLDOWN_BACKEND", "memory")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("ENVIRONMENT", "test")

import asyncio
from typing import Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select

from verifylens.main import app
from verifylens.api.dependencies import (
    get_cooldown_tracker,
    get_session_factory,
    get_verification_provider,
)
from verifylens.db.base import Base
from verifylens.db.session import build_engine, build_session_factory
from verifylens.models import Account
from verifylens.services.api_key_service import APIKeyService
from verifylens.services.cache_service import ResultCache
from verifylens.services.cooldown_service import CooldownTracker, InMemoryCooldownStore
from verifylens.services.ledger_service import CreditLedger
from verifylens.services.pipeline import AdmissionPipeline, build_endpoint_policies
from verifylens.services.usage_service import UsageLogService
from verifylens.services.verification_provider import VerificationOutcome, VerificationProvider

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Manually advanced epoch clock"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubVerificationProvider(VerificationProvider):
    """Provider returning a fixed outcome, with hooks for delays and failures"""

    def __init__(self):
        self.outcome: Optional[VerificationOutcome] = None
        self.delay = 0.0
        self.error: Optional[Exception] = None
        self.on_call = None
        self.calls = 0

    async def _respond(self, request) -> VerificationOutcome:
        self.calls += 1
        if self.on_call is not None:
            await self.on_call()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.outcome is not None:
            return self.outcome
        return VerificationOutcome.match({"user": {"username": request.username, "verified": True}})

    async def verify_exact(self, request):
        return await self._respond(request)

    async def verify_smart(self, request):
        return await self._respond(request)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database per test"""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'verifylens_test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cooldown_tracker(clock):
    return CooldownTracker(InMemoryCooldownStore(clock=clock), clock=clock)


@pytest.fixture
def provider():
    return StubVerificationProvider()


@pytest.fixture
def policies():
    return build_endpoint_policies()


@pytest.fixture
def ledger(session_factory):
    return CreditLedger(session_factory)


@pytest.fixture
def cache(session_factory):
    return ResultCache(session_factory)


@pytest.fixture
def api_key_service(session_factory):
    return APIKeyService(session_factory)


@pytest.fixture
def pipeline(session_factory, cooldown_tracker, provider, clock):
    return AdmissionPipeline(
        credentials=APIKeyService(session_factory),
        cooldowns=cooldown_tracker,
        cache=ResultCache(session_factory),
        ledger=CreditLedger(session_factory),
        usage_log=UsageLogService(session_factory),
        provider=provider,
        execute_timeout=1.0,
        clock=clock,
    )


@pytest.fixture
def make_account(session_factory, api_key_service):
    """Create an account with the given balance and issue it an API key"""
    counter = {"n": 0}

    async def _make(credits: int = 1000, is_active: bool = True, with_key: bool = True):
        counter["n"] += 1
        async with session_factory() as db:
            account = Account(
                email=f"client{counter['n']}@example.com",
                name=f"Client {counter['n']}",
                credits=credits,
                is_active=is_active,
            )
            db.add(account)
            await db.commit()

        api_key = None
        if with_key:
            api_key = (await api_key_service.issue(account.id)).api_key
        return account, api_key

    return _make


@pytest.fixture
def count_rows(session_factory):
    """Count rows of a model, optionally filtered"""

    async def _count(model, *conditions) -> int:
        async with session_factory() as db:
            query = select(func.count()).select_from(model)
            if conditions:
                query = query.where(*conditions)
            return (await db.execute(query)).scalar_one()

    return _count


@pytest_asyncio.fixture
async def client(session_factory, cooldown_tracker, provider):
    """HTTP client against the app with test collaborators"""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cooldown_tracker] = lambda: cooldown_tracker
    app.dependency_overrides[get_verification_provider] = lambda: provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
