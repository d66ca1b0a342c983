import os

# Must be set before `config` is imported anywhere
os.environ.setdefault("MODE", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport

from main import app as fastapi_app
import db as project_db
from db_base import Base
from db_models.ledger_record import LedgerRecord
from db_models.participant import Affiliation, Participant
from core.log import InvocationContext
from core.security import get_password_hash, create_access_token
from core.store import RecordStore
from api.diamonds.models import REGISTRY_KEY, AssetRegistry

TEST_PASSWORD = "correct-horse"

# One participant per affiliation, plus a second miner and a second distributor
PARTICIPANTS = {
    "alice": Affiliation.MINER,
    "bob": Affiliation.DISTRIBUTOR,
    "carol": Affiliation.DEALERSHIP,
    "dave": Affiliation.BUYER,
    "erin": Affiliation.TRADER,
    "frank": Affiliation.CUTTER,
    "grace": Affiliation.JEWELLERY_MAKER,
    "heidi": Affiliation.CUSTOMER,
    "ivan": Affiliation.SCRAP_MERCHANT,
    "mallory": Affiliation.MINER,
    "trent": Affiliation.DISTRIBUTOR,
}


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt is slow on purpose; hash once for the whole run
    return get_password_hash(TEST_PASSWORD)


@pytest.fixture
def database_path(tmp_path, password_hash):
    """A fresh SQLite ledger per test: schema, empty registry, enrolled participants."""
    path = tmp_path / "ledger.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(bind=sync_engine)

    with Session(sync_engine) as session:
        session.add(LedgerRecord(key=REGISTRY_KEY, value=AssetRegistry().to_bytes(), version=1))
        for username, affiliation in PARTICIPANTS.items():
            session.add(Participant(
                username=username,
                hashed_password=password_hash,
                affiliation=affiliation.value,
                is_active=True,
            ))
        session.commit()

    sync_engine.dispose()
    return path


@pytest.fixture
def session_factory(database_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        future=True,
        echo=False,
        poolclass=NullPool,
    )
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(db_session):
    return RecordStore(db_session)


@pytest.fixture
def ctx():
    """Build an invocation context for a named test participant."""
    def _ctx(username: str, affiliation: Affiliation | None = None) -> InvocationContext:
        return InvocationContext(caller=username, role=affiliation or PARTICIPANTS[username])
    return _ctx


@pytest.fixture
async def async_client(session_factory):
    # Each request gets its own session on the test database
    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def headers():
    """Authorization headers for a named test participant."""
    def _headers(username: str) -> dict:
        token = create_access_token(data={"sub": username, "role": PARTICIPANTS[username].value})
        return {"Authorization": f"Bearer {token}"}
    return _headers


# --- Ledger helpers ---

# (edge, caller, recipient) along the canonical custody path
CUSTODY_PATH = [
    ("miner_to_distributor", "alice", "bob"),
    ("distributor_to_dealership", "bob", "carol"),
    ("dealership_to_buyer", "carol", "dave"),
    ("buyer_to_trader", "dave", "erin"),
    ("trader_to_cutter", "erin", "frank"),
    ("cutter_to_jewellery_maker", "frank", "grace"),
    ("jewellery_maker_to_customer", "grace", "heidi"),
    ("customer_to_scrap_merchant", "heidi", "ivan"),
]

# Enough description for the diamond to leave distribution
CORE_VALUES = {
    "clarity": "VVS1",
    "weight": "000000000001050",
    "cut": "brilliant",
    "colour": "D",
    "symmetry": "excellent",
}


@pytest.fixture
def mine(store, ctx):
    """
    Create a diamond as alice and walk it `steps` edges along the custody
    path. Bob describes it before handing it to the dealership.
    """
    from api.diamonds import db_manager, transitions

    async def _mine(asset_id: str = "AB1234567", steps: int = 0):
        await transitions.create(store, ctx("alice"), asset_id)
        for name, caller, recipient in CUSTODY_PATH[:steps]:
            if name == "distributor_to_dealership":
                for attribute, value in CORE_VALUES.items():
                    loaded = await db_manager.retrieve_diamond(store, asset_id)
                    await transitions.update_attribute(store, ctx("bob"), loaded, attribute, value)
            loaded = await db_manager.retrieve_diamond(store, asset_id)
            await transitions.transfer(
                store, ctx(caller), loaded,
                transitions.TRANSFER_EDGES[name], recipient, PARTICIPANTS[recipient],
            )
        return await db_manager.retrieve_diamond(store, asset_id)

    return _mine
