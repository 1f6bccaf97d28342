import pytest

from notary.app.canonicalization.engine import CanonicalizationEngine
from notary.app.coordinator.registration import RegistrationCoordinator
from notary.app.coordinator.verification import VerificationCoordinator
from notary.app.ledger.memory import InMemoryLedger
from notary.app.store.database import create_engine, create_session_factory, init_schema
from notary.app.store.version_store import VersionStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store(tmp_path):
    """Version store on a throwaway SQLite file (file-based so that
    concurrent sessions use separate connections)."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'notary.db'}")
    await init_schema(engine)
    try:
        yield VersionStore(create_session_factory(engine))
    finally:
        await engine.dispose()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def canonicalizer():
    return CanonicalizationEngine()


@pytest.fixture
def registration(canonicalizer, store, ledger):
    return RegistrationCoordinator(engine=canonicalizer, store=store, ledger=ledger)


@pytest.fixture
def verification(canonicalizer, store, ledger):
    return VerificationCoordinator(engine=canonicalizer, store=store, ledger=ledger)
