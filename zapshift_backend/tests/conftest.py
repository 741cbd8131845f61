"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from redis.exceptions import ConnectionError as RedisConnectionError

from zapshift_backend.app.main import app
from zapshift_backend.app.db.session import get_db, Base
from zapshift_backend.app.core.redis_client import get_redis
from zapshift_backend.app.core.dependencies import get_payment_gateway
from zapshift_backend.app.core.exceptions import NotFoundError
from zapshift_backend.app.core.jwt import create_access_token
from zapshift_backend.app.domain.parcels.state_machine import ParcelStateMachine
from zapshift_backend.app.domain.parcels.transitions import TransitionPolicy
from zapshift_backend.app.models.enums import UserRole
from zapshift_backend.app.models.rider import Rider
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus
from zapshift_backend.app.models.user import User
from zapshift_backend.app.schemas.payment import GatewaySession, SessionMetadata
from zapshift_backend.app.services.reconcile_lock import ReconcileLock
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager
from zapshift_backend.app.services.tracking_ledger import TrackingLedger
import zapshift_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis is down")

    async def ping(self):
        self._check()
        return not self._closed

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        self._check()
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakeGateway:
    """In-memory payment gateway keyed by session id."""

    def __init__(self):
        self.sessions = {}
        self.calls = 0
        self.error = None

    def add_session(
        self,
        session_id: str,
        parcel,
        transaction_id: str = "tx_1",
        payment_status: str = "paid",
        amount: float = None,
        tracking_id: str = None,
    ) -> GatewaySession:
        session = GatewaySession(
            session_id=session_id,
            transaction_id=transaction_id,
            payment_status=payment_status,
            amount=parcel.cost if amount is None else amount,
            currency="usd",
            customer_email=parcel.sender_email,
            metadata=SessionMetadata(
                parcel_id=parcel.id,
                tracking_id=tracking_id or parcel.tracking_id,
                parcel_name=parcel.parcel_name,
            ),
        )
        self.sessions[session_id] = session
        return session

    async def retrieve_session(self, session_ref: str) -> GatewaySession:
        self.calls += 1
        if self.error:
            raise self.error
        if session_ref not in self.sessions:
            raise NotFoundError("Payment session", session_ref)
        return self.sessions[session_ref]


def parcel_payload(**overrides) -> dict:
    payload = {
        "parcel_name": "Birthday gift",
        "parcel_type": "non-document",
        "weight_kg": 2.5,
        "cost": 150.0,
        "sender_name": "Sara Sender",
        "sender_email": "sender@test.com",
        "sender_phone": "01700000000",
        "sender_district": "Dhaka",
        "sender_address": "12 Lake Road",
        "receiver_name": "Rafi Receiver",
        "receiver_email": "receiver@test.com",
        "receiver_phone": "01800000000",
        "receiver_district": "Sylhet",
        "receiver_address": "7 Tea Garden Lane",
    }
    payload.update(overrides)
    return payload


def auth_headers(email: str) -> dict:
    token = create_access_token({"sub": email, "email": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture(autouse=True)
def apply_overrides(redis_client, fake_gateway, monkeypatch):
    """Swap the store, Redis and the gateway for every test."""
    monkeypatch.setattr(redis_client_module, "redis_client", redis_client)

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def ledger(db_session):
    return TrackingLedger(db_session)


@pytest.fixture
def rider_manager(db_session):
    return RiderAssignmentManager(db_session)


@pytest.fixture
def state_machine(db_session, ledger, rider_manager):
    return ParcelStateMachine(db_session, ledger, rider_manager, policy=TransitionPolicy(), track_rejections=True)


@pytest.fixture
def reconcile_lock(redis_client):
    return ReconcileLock(redis_client, ttl_seconds=30)


@pytest.fixture
def make_rider(db_session):
    """Factory inserting riders directly (approved and available by default)."""
    async def _make(
        email: str = "rider@test.com",
        name: str = "Rana Rider",
        status: RiderStatus = RiderStatus.APPROVED,
        work_status: WorkStatus = WorkStatus.AVAILABLE,
        district: str = "Dhaka",
    ) -> Rider:
        rider = Rider(
            name=name,
            email=email,
            phone="01900000000",
            region="Dhaka",
            district=district,
            status=status,
            work_status=work_status,
        )
        db_session.add(rider)
        await db_session.commit()
        await db_session.refresh(rider)
        return rider

    return _make


@pytest.fixture
def make_user(db_session):
    async def _make(email: str, role: UserRole = UserRole.USER) -> User:
        user = User(email=email, display_name=email.split("@")[0], role=role)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_parcel(state_machine):
    async def _make(**overrides):
        return await state_machine.create(parcel_payload(**overrides))

    return _make


@pytest.fixture
def paid_parcel(make_parcel, state_machine, db_session):
    """Factory for parcels already in pending-pickup."""
    async def _make(**overrides):
        parcel = await make_parcel(**overrides)
        await state_machine.mark_paid(parcel.id, parcel.tracking_id)
        await db_session.commit()
        return parcel

    return _make


async def fetch(model, pk):
    """Read a row through a fresh session so the result reflects committed state."""
    async with TestingSessionLocal() as session:
        return await session.get(model, pk)


@pytest.fixture
def refetch():
    return fetch


@pytest.fixture
def payload_factory():
    return parcel_payload


@pytest.fixture
def headers_for():
    return auth_headers
