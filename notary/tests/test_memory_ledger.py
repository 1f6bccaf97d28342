import pytest

from notary.app.core.errors import LedgerRejected, LedgerUnavailable
from notary.app.ledger.base import LedgerAnchor
from notary.app.ledger.memory import InMemoryLedger
from notary.app.utils.hashing import compute_digest

pytestmark = pytest.mark.anyio


async def _register(ledger, content="Hello World", label="v1", algorithm="SHA-256"):
    return await ledger.register(
        contract_id="c-1",
        version_label=label,
        content=content,
        normalization_version="1.0",
        hash_algorithm=algorithm,
    )


def test_satisfies_ledger_protocol():
    assert isinstance(InMemoryLedger(), LedgerAnchor)


async def test_ledger_hashes_content_itself():
    ledger = InMemoryLedger()
    await _register(ledger, algorithm="SHA-512")

    assert await ledger.fetch(contract_id="c-1", version_label="v1") == compute_digest(
        "Hello World", "SHA-512"
    )


async def test_unknown_key_is_none():
    assert await InMemoryLedger().fetch(contract_id="c-1", version_label="v1") is None


async def test_identical_rewrite_is_idempotent():
    ledger = InMemoryLedger()

    assert await _register(ledger) == await _register(ledger)


async def test_divergent_rewrite_is_rejected():
    ledger = InMemoryLedger()
    await _register(ledger)

    with pytest.raises(LedgerRejected):
        await _register(ledger, content="Hello world")

    assert await ledger.fetch(contract_id="c-1", version_label="v1") == compute_digest("Hello World")


async def test_injected_register_failure_fires_once():
    ledger = InMemoryLedger()
    ledger.fail_next_register = LedgerUnavailable("down")

    with pytest.raises(LedgerUnavailable):
        await _register(ledger)

    assert (await _register(ledger)).startswith("0x")
    assert ledger.register_calls == [("c-1", "v1"), ("c-1", "v1")]


async def test_injected_fetch_failure_persists_until_cleared():
    ledger = InMemoryLedger()
    await _register(ledger)
    ledger.fail_fetch = LedgerUnavailable("down")

    for _ in range(2):
        with pytest.raises(LedgerUnavailable):
            await ledger.fetch(contract_id="c-1", version_label="v1")

    ledger.fail_fetch = None
    assert await ledger.fetch(contract_id="c-1", version_label="v1") is not None
