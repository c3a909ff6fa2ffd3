# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PUBLIC_KEY_SALT", "test-public-salt")
os.environ.setdefault("SERVER_SECRET_KEY", "test-server-secret")
os.environ.setdefault("PAYLOAD_ENCRYPTION_KEY", "test-payload-key")
os.environ.setdefault("PAYLOAD_SALT_SECRET", "test-payload-salt")
os.environ.setdefault("PAYLOAD_KDF_ITERATIONS", "1000")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "50")

from twist_api.api.v1.dependencies import (
    get_abuse_guard_dep,
    get_broadcaster_dep,
    get_chain_service_dep,
    get_identity_client_dep,
    get_reward_table_dep,
)
from twist_api.core.envelope import encode_payload
from twist_api.core.handshake import generate_proof
from twist_api.core.rewards import RewardCategory, load_reward_table
from twist_api.core.settings import Settings, settings
from twist_api.db.session import Base
from twist_api.db.session import get_db as app_get_session
from twist_api.main import app as fastapi_app
from twist_api.services.abuse import AbuseGuard, clear_memory_state
from twist_api.services.broadcast import PushBroadcaster, PushConfig
from twist_api.services.identity import IdentityProviderError

TEST_DB_URL = "sqlite://"

FID = 4242
OTHER_FID = 777
WALLET = "0x" + "a1" * 20
FOREIGN_WALLET = "0x" + "b2" * 20
YAKI_ADDRESS = "0x" + "c3" * 20
FAKE_TX_HASH = "0x" + "ab" * 32
FAKE_SIGNATURE = "0x" + "cd" * 65

MON_0_01 = "10000000000000000"
ENVELOPE_0_02 = "20000000000000000"


class FakeIdentityProvider:
    """In-memory stand-in for the identity provider client."""

    def __init__(self) -> None:
        self.wallets: dict[int, set[str]] = {FID: {WALLET}}
        self.following: set[tuple[int, int]] = set()
        self.fail = False
        self.wallet_calls = 0
        self.follow_calls = 0

    async def fetch_wallets(self, fid: int) -> set[str]:
        self.wallet_calls += 1
        if self.fail:
            raise IdentityProviderError("provider down")
        if fid not in self.wallets:
            raise IdentityProviderError(f"No provider user for fid {fid}")
        return set(self.wallets[fid])

    async def is_following(self, fid: int, target_fid: int) -> bool:
        self.follow_calls += 1
        if self.fail:
            raise IdentityProviderError("provider down")
        return (fid, target_fid) in self.following

    async def best_friends(self, fid: int, limit: int = 5) -> dict[str, Any]:
        if self.fail:
            raise IdentityProviderError("provider down")
        return {"users": [{"fid": OTHER_FID, "mutual_affinity_score": 0.9}][:limit]}


class FakeChain:
    """Records chain actions instead of touching an RPC node."""

    def __init__(self) -> None:
        self.deposits: list[tuple[str, int]] = []
        self.transfers: list[tuple[str, int]] = []
        self.signatures: list[tuple[str, str, int]] = []
        self.paid_purchases: set[str] = set()
        self.error: Exception | None = None

    def deposit_for(self, to: str, amount: int) -> str:
        if self.error is not None:
            raise self.error
        self.deposits.append((to, amount))
        return FAKE_TX_HASH

    def send_value(self, to: str, amount: int) -> str:
        if self.error is not None:
            raise self.error
        self.transfers.append((to, amount))
        return FAKE_TX_HASH

    def sign_reward(self, user_address: str, token_address: str, amount: int) -> str:
        if self.error is not None:
            raise self.error
        self.signatures.append((user_address, token_address, amount))
        return FAKE_SIGNATURE

    def verify_purchase(self, tx_hash: str, price: int) -> bool:
        return tx_hash.lower() in self.paid_purchases


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(autouse=True)
def reset_abuse_state() -> Iterator[None]:
    clear_memory_state()
    yield
    clear_memory_state()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def reward_table() -> dict[str, RewardCategory]:
    return load_reward_table(token_addresses={"YAKI": YAKI_ADDRESS})


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    identity_provider: FakeIdentityProvider,
    chain: FakeChain,
    reward_table: dict[str, RewardCategory],
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    overrides = {
        app_get_session: _get_session_override,
        get_identity_client_dep: lambda: identity_provider,
        get_chain_service_dep: lambda: chain,
        get_broadcaster_dep: lambda: PushBroadcaster(
            PushConfig(webhook_url=None, channel="test", timeout_seconds=1.0)
        ),
        get_reward_table_dep: lambda: reward_table,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def strict_limits(app: FastAPI, db_session: Session) -> Iterator[AbuseGuard]:
    """Install an abuse guard with a tiny rate window."""
    guard = AbuseGuard(session=db_session, rate_limit=2, violation_threshold=3)
    app.dependency_overrides[get_abuse_guard_dep] = lambda: guard
    try:
        yield guard
    finally:
        app.dependency_overrides.pop(get_abuse_guard_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide the Settings instance the application runs with."""
    return settings


@pytest.fixture()
def origin_headers() -> dict[str, str]:
    return {"Origin": settings.canonical_origin}


def proof_fields(timestamp_ms: int | None = None) -> dict[str, str]:
    """Return a fresh randomKey/fusedKey pair as a browser would send it."""
    proof = generate_proof(settings.public_key_salt, timestamp_ms)
    return {"randomKey": proof.random_key, "fusedKey": proof.fused_key}


def encrypt_body(data: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    """Wrap `data` in an encrypted envelope body."""
    envelope = encode_payload(
        data,
        base_key=settings.payload_encryption_key,
        salt_secret=settings.payload_salt_secret,
        iterations=settings.payload_kdf_iterations,
        **kwargs,
    )
    return {"encryptedPayload": envelope.model_dump(by_alias=True)}


def spin_for_token(client: TestClient, fid: int = FID) -> str:
    """Consume one spin through the API and return its spin token."""
    response = client.post("/api/v1/spins", json={"fid": fid, "mode": "spin", **proof_fields()})
    assert response.status_code == 200, response.text
    return response.json()["spinToken"]
