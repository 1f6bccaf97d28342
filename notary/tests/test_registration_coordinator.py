"""
Registration coordinator against the in-memory ledger.

Covers the happy path, version sequencing, and the partial state left
behind when the ledger write fails.
"""

import pytest

from notary.app.core.errors import (
    AlreadyAnchored,
    AnchoringFailed,
    ExtractionError,
    LedgerRejected,
    LedgerUnavailable,
    NotFound,
    UnsupportedFormat,
)
from notary.app.utils.hashing import compute_digest

pytestmark = pytest.mark.anyio


async def test_register_new_contract(registration, store, ledger):
    result = await registration.register_document(
        data=b"Hello World",
        file_name="contract.txt",
        file_type="txt",
        tenant_id="acme",
    )

    assert result.version_number == 1
    assert result.version_label == "v1"
    assert result.contract_hash == compute_digest("Hello World")
    assert result.hash_algorithm == "SHA-256"
    assert result.normalization_version == "1.0"
    assert result.on_chain_tx_hash is not None

    contract = await store.get_contract(result.contract_id)
    assert contract.name == "contract.txt"
    assert contract.tenant_id == "acme"

    entry = ledger.entry(result.contract_id, "v1")
    assert entry.digest == result.contract_hash
    assert entry.tx_reference == result.on_chain_tx_hash
    assert entry.hash_algorithm == "SHA-256"
    assert entry.normalization_version == "1.0"


async def test_register_appends_to_existing_contract(registration, store):
    first = await registration.register_document(
        data=b"Draft one", file_name="nda.txt", file_type="txt"
    )
    second = await registration.register_document(
        data=b"Draft two",
        file_name="nda-2.txt",
        file_type="txt",
        contract_id=first.contract_id,
    )

    assert second.contract_id == first.contract_id
    assert second.version_label == "v2"

    stored = await store.get_version(second.version_id)
    assert stored.raw_text == "Draft two"
    assert stored.canonical_content == "Draft two"
    assert stored.file_name == "nda-2.txt"


async def test_stored_digest_matches_canonical_text(registration, store):
    result = await registration.register_document(
        data=b"  Clause 1.\r\n\r\n\r\n\tThe  parties agree. ",
        file_name="nda.txt",
        file_type="txt",
    )
    stored = await store.get_version(result.version_id)

    assert stored.canonical_content == "Clause 1.\n\nThe parties agree."
    assert compute_digest(stored.canonical_content, stored.hash_algorithm) == stored.contract_hash


async def test_unknown_contract_persists_nothing(registration, ledger):
    with pytest.raises(NotFound):
        await registration.register_document(
            data=b"Hello World",
            file_name="nda.txt",
            file_type="txt",
            contract_id="missing",
        )
    assert ledger.register_calls == []


async def test_extraction_failure_persists_nothing(registration, store, ledger):
    contract = await store.create_contract(name="nda.txt")

    with pytest.raises(ExtractionError):
        await registration.register_document(
            data=b" \r\n ",
            file_name="nda.txt",
            file_type="txt",
            contract_id=contract.id,
        )

    with pytest.raises(UnsupportedFormat):
        await registration.register_document(
            data=b"Hello World",
            file_name="nda.rtf",
            file_type="rtf",
            contract_id=contract.id,
        )

    assert await store.list_versions(contract.id) == []
    assert ledger.register_calls == []


async def test_ledger_unavailable_leaves_unanchored_version(registration, store, ledger):
    ledger.fail_next_register = LedgerUnavailable("node unreachable")

    with pytest.raises(AnchoringFailed) as exc_info:
        await registration.register_document(
            data=b"Hello World", file_name="nda.txt", file_type="txt"
        )

    error = exc_info.value
    assert isinstance(error.cause, LedgerUnavailable)
    assert error.status_code == 503
    assert error.retryable is True
    assert error.version.version_label == "v1"
    assert error.version.on_chain_tx_hash is None

    payload = error.to_payload()
    assert payload["cause"] == "ledger_unavailable"
    assert payload["version"]["versionNumber"] == 1
    assert payload["version"]["onChainTxHash"] is None
    assert "rawText" not in payload["version"]

    pending = await store.list_unanchored(error.version.contract_id)
    assert [v.id for v in pending] == [error.version.id]
    assert ledger.entry(error.version.contract_id, "v1") is None


async def test_reanchor_after_failure(registration, store, ledger):
    ledger.fail_next_register = LedgerUnavailable("node unreachable")
    with pytest.raises(AnchoringFailed) as exc_info:
        await registration.register_document(
            data=b"Hello World", file_name="nda.txt", file_type="txt"
        )
    version = exc_info.value.version

    result = await registration.reanchor_version(version.id)

    assert result.version_id == version.id
    assert result.on_chain_tx_hash is not None
    assert await store.list_unanchored(version.contract_id) == []
    assert ledger.entry(version.contract_id, "v1").digest == version.contract_hash


async def test_reanchor_anchored_version_is_rejected(registration, ledger):
    result = await registration.register_document(
        data=b"Hello World", file_name="nda.txt", file_type="txt"
    )

    with pytest.raises(AlreadyAnchored):
        await registration.reanchor_version(result.version_id)

    assert len(ledger.register_calls) == 1


async def test_reanchor_unknown_version(registration):
    with pytest.raises(NotFound):
        await registration.reanchor_version("missing")


async def test_ledger_rejection_is_not_retryable(registration, store, ledger):
    contract = await store.create_contract(name="nda.txt")
    # Another writer already holds v1 on the ledger with different content.
    await ledger.register(
        contract_id=contract.id,
        version_label="v1",
        content="Something else",
        normalization_version="1.0",
        hash_algorithm="SHA-256",
    )

    with pytest.raises(AnchoringFailed) as exc_info:
        await registration.register_document(
            data=b"Hello World",
            file_name="nda.txt",
            file_type="txt",
            contract_id=contract.id,
        )

    assert isinstance(exc_info.value.cause, LedgerRejected)
    assert exc_info.value.status_code == 409
    assert exc_info.value.retryable is False
    assert len(await store.list_unanchored(contract.id)) == 1
