"""Shared test fixtures for the FarmLink test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions).
"""

import uuid

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from farmlink.core.async_tasks import drain_background_tasks
from farmlink.database import Base, get_db
from farmlink.main import app
from farmlink.models import *  # noqa: ensure all models are loaded for create_all
from farmlink.services.escrow_service import EscrowLedger, MockEscrowProvider
from farmlink.services.notification_service import Notifier, RecordingNotificationBus


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_background_tasks()
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Escrow providers
# ---------------------------------------------------------------------------

class FailingCaptureProvider(MockEscrowProvider):
    """Holds succeed, captures are declined."""

    name = "failing"

    def __init__(self):
        self.capture_calls: list[str] = []

    async def capture(self, provider_ref: str) -> bool:
        self.capture_calls.append(provider_ref)
        return False


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def bus() -> RecordingNotificationBus:
    return RecordingNotificationBus()


@pytest.fixture
def notifier(bus: RecordingNotificationBus) -> Notifier:
    return Notifier(bus)


@pytest.fixture
def escrow() -> EscrowLedger:
    return EscrowLedger(MockEscrowProvider())


@pytest.fixture
def failing_escrow() -> EscrowLedger:
    return EscrowLedger(FailingCaptureProvider())


@pytest.fixture
async def client(notifier: Notifier, escrow: EscrowLedger):
    """httpx AsyncClient wired to the FastAPI app with test DB override."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    saved = (app.state.escrow, app.state.notifier)
    app.state.escrow = escrow
    app.state.notifier = notifier

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.state.escrow, app.state.notifier = saved
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


KAMPALA = {"name": "Nakasero Market", "address": "Kampala", "lat": 0.3136, "lng": 32.5811}
ENTEBBE = {"name": "Entebbe Depot", "address": "Entebbe", "lat": 0.0512, "lng": 32.4637}


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def make_principal():
    """Factory fixture: build a principal of *role* and return (principal, jwt_token)."""
    from farmlink.core.auth import create_access_token, principal_from_claims

    def _make(role: str, principal_id: str = None):
        principal_id = principal_id or _new_id()
        principal = principal_from_claims({"sub": principal_id, "role": role})
        return principal, create_access_token(principal_id, role)

    return _make


@pytest.fixture
def make_lot(db: AsyncSession, notifier: Notifier):
    """Factory fixture: create an open ProduceLot for a farmer."""
    from farmlink.schemas.lot import LotCreateRequest
    from farmlink.services import lot_service

    async def _make(farmer_id: str, produce_type: str = "Maize", quantity: float = 500, **kwargs):
        req = LotCreateRequest(
            produce_type=produce_type,
            quantity=quantity,
            unit=kwargs.get("unit", "Kg"),
            reserve_price=kwargs.get("reserve_price", 0),
            pickup=kwargs.get("pickup", KAMPALA),
        )
        return await lot_service.create_lot(db, farmer_id, req, notifier=notifier)

    return _make


@pytest.fixture
def make_bid(db: AsyncSession, notifier: Notifier):
    """Factory fixture: place a pending bid on a lot."""
    from farmlink.schemas.lot import BidCreateRequest
    from farmlink.services import lot_service

    async def _make(buyer_id: str, lot_id: str, amount: float = 100_000, quantity: float = 500):
        req = BidCreateRequest(amount=amount, quantity=quantity, units="Kg")
        return await lot_service.place_bid(db, buyer_id, lot_id, req, notifier=notifier)

    return _make


@pytest.fixture
def make_request(db: AsyncSession, notifier: Notifier):
    """Factory fixture: create an open DeliveryRequest for a buyer."""
    from farmlink.schemas.request import DeliveryRequestCreate
    from farmlink.services import request_service

    async def _make(buyer_id: str, pickup: dict = None, dropoff: dict = None, **kwargs):
        req = DeliveryRequestCreate(
            produce_type=kwargs.get("produce_type", "Beans"),
            quantity=kwargs.get("quantity", 20),
            unit=kwargs.get("unit", "Bags"),
            pickup=pickup or KAMPALA,
            dropoff=dropoff or ENTEBBE,
            farmer_id=kwargs.get("farmer_id"),
        )
        return await request_service.create_request(db, buyer_id, req, notifier=notifier)

    return _make


@pytest.fixture
def make_quote(db: AsyncSession, notifier: Notifier):
    """Factory fixture: submit a pending quote on a request."""
    from farmlink.schemas.request import QuoteCreateRequest
    from farmlink.services import request_service

    async def _make(driver_id: str, request_id: str, amount: float = 40_000, eta_minutes: int = 90):
        req = QuoteCreateRequest(amount=amount, eta_minutes=eta_minutes)
        return await request_service.submit_quote(db, driver_id, request_id, req, notifier=notifier)

    return _make


@pytest.fixture
def make_active_job(
    db: AsyncSession, escrow: EscrowLedger, notifier: Notifier, make_lot, make_bid, make_quote,
):
    """Factory fixture: run lot -> bid -> sale -> quote -> award -> driver confirm.

    Returns (job, ids) where ids holds farmer/buyer/driver/lot ids.
    """
    from farmlink.services import job_service, lot_service, request_service

    async def _make(product_amount: float = 100_000, transport_amount: float = 40_000):
        farmer_id, buyer_id, driver_id = _new_id(), _new_id(), _new_id()
        lot = await make_lot(farmer_id)
        bid = await make_bid(buyer_id, lot.id, amount=product_amount)
        request = await lot_service.accept_bid(
            db, farmer_id, lot.id, bid.id, escrow=escrow, notifier=notifier
        )
        quote = await make_quote(driver_id, request.id, amount=transport_amount)
        job = await request_service.accept_quote(
            db, buyer_id, request.id, quote.id, escrow=escrow, notifier=notifier
        )
        job = await job_service.driver_confirm(db, driver_id, job.id, notifier=notifier)
        ids = {
            "farmer": farmer_id,
            "buyer": buyer_id,
            "driver": driver_id,
            "lot": lot.id,
            "request": request.id,
            "quote": quote.id,
        }
        return job, ids

    return _make
