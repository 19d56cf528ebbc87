"""
Centralized Test Configuration.
"""

import itertools
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from seatrace.app.main import app
from seatrace.app.db.session import get_db, Base
from seatrace.app.core.exceptions import ChainGatewayError
from seatrace.app.core.identity import Identity
from seatrace.app.core.jwt import create_access_token
from seatrace.app.models.company import Company
from seatrace.app.models.user import User
from seatrace.app.models.enums import CompanyType, UserRole
from seatrace.app.schemas.chain import ChainCallResult, ChainTrace
from seatrace.app.services.chain_gateway import get_chain_gateway

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class FakeChainGateway:
    """
    In-memory chain gateway.

    Successful calls are applied to an in-memory ledger so that
    ``get_full_trace`` reflects what was confirmed. Set ``fail_with`` to a
    ChainGatewayError, or ``status_message`` to something other than
    "Success", to simulate a failing chain.
    """

    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.status_message = "Success"
        self.trace_error = None
        self.ledger = {}
        self._tx_counter = itertools.count(1)

    async def call(self, function_name, params, caller_address):
        self.calls.append((function_name, list(params), caller_address))
        if self.fail_with is not None:
            raise self.fail_with
        tx_hash = f"0x{next(self._tx_counter):064x}"
        if self.status_message == "Success":
            self._apply(function_name, params, caller_address)
        return ChainCallResult(transaction_hash=tx_hash, status_message=self.status_message)

    def _apply(self, function_name, params, caller_address):
        good_id, info = params[0], params[1]
        if function_name == "registerGood":
            self.ledger[good_id] = {"good_name": info, "register_time": "2026-01-01 08:00:00"}
        elif function_name == "shipGood":
            self.ledger[good_id].update(ship_exists=True, transport_info=info, ship_operator_addr=caller_address)
        elif function_name == "inspectGood":
            self.ledger[good_id].update(inspect_exists=True, inspection_info=info, inspect_operator_addr=caller_address)
        elif function_name == "deliverGood":
            self.ledger[good_id].update(delivery_exists=True, delivery_info=info, delivery_operator_addr=caller_address)

    async def get_full_trace(self, good_id):
        if self.trace_error is not None:
            raise self.trace_error
        if good_id not in self.ledger:
            raise ChainGatewayError("Good does not exist on chain", "getFullTrace")
        return ChainTrace(good_id=good_id, **self.ledger[good_id])

    async def get_good_status(self, good_id):
        if good_id not in self.ledger:
            return 0
        trace = await self.get_full_trace(good_id)
        return trace.completed_stages

    def functions_called(self):
        return [name for name, _, _ in self.calls]


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply the database override once for the session."""
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
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
    await engine.dispose()


@pytest.fixture
def chain_gateway():
    """Fake chain gateway, also injected into the API."""
    gateway = FakeChainGateway()
    app.dependency_overrides[get_chain_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_chain_gateway, None)


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


SEED_COMPANIES = {
    CompanyType.PRODUCER: ("Xiamen Seafood Co.", "0x" + "a1" * 20),
    CompanyType.SHIPPER: ("Fujian Cold Chain Logistics", "0x" + "b2" * 20),
    CompanyType.INSPECTOR: ("Fuzhou Port Inspection", "0x" + "c3" * 20),
    CompanyType.DEALER: ("Fuzhou Fresh Market", "0x" + "d4" * 20),
}


@pytest.fixture
async def companies(db_session):
    """One company of each type, keyed by CompanyType."""
    created = {}
    for company_type, (name, address) in SEED_COMPANIES.items():
        company = Company(company_name=name, company_type=company_type, blockchain_address=address)
        db_session.add(company)
        created[company_type] = company
    await db_session.commit()
    for company in created.values():
        await db_session.refresh(company)
    return created


@pytest.fixture
async def users(db_session, companies):
    """An operator per company type plus a super admin under the key "admin"."""
    created = {}
    for company_type, company in companies.items():
        user = User(
            username=f"{company_type.value.lower()}_op",
            real_name=f"{company_type.value.title()} Operator",
            role=UserRole.OPERATOR,
            company_id=company.id,
        )
        db_session.add(user)
        created[company_type] = user

    admin = User(username="admin", real_name="Platform Admin", role=UserRole.SUPER_ADMIN, company_id=None)
    db_session.add(admin)
    created["admin"] = admin

    await db_session.commit()
    for user in created.values():
        await db_session.refresh(user)
    return created


def identity_for(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        username=user.username,
        real_name=user.real_name,
        role=user.role,
        company_id=user.company_id,
    )


def auth_headers(user: User) -> dict:
    token = create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "company_id": user.company_id,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def identities(users):
    """Identity per key of ``users``."""
    return {key: identity_for(user) for key, user in users.items()}


@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    """Build bearer headers for a user: ``auth_headers(users[CompanyType.PRODUCER])``."""
    return auth_headers
