"""
Registration coordinator.

Execution order:
    1. Canonicalize (worker thread) and digest the document
    2. Resolve or create the target contract
    3. Append the version (atomic number assignment, unanchored)
    4. Anchor on the ledger (shielded from cancellation once submitted)
    5. Record the ledger receipt

Failure semantics:
- Steps 1 and 2 abort with nothing persisted.
- A ledger failure in step 4 leaves the version persisted but
  unanchored and raises AnchoringFailed carrying that version. The
  ledger write is never retried here; reanchor_version() is the
  explicit reconciliation path.
"""

from __future__ import annotations

import logging
from typing import Optional

from anyio import CancelScope, to_thread

from notary.app.canonicalization.engine import CanonicalizationEngine
from notary.app.canonicalization.extractors import FileType
from notary.app.core.errors import (
    AlreadyAnchored,
    AnchoringFailed,
    LedgerRejected,
    LedgerUnavailable,
)
from notary.app.ledger.base import LedgerAnchor
from notary.app.schemas.records import (
    ContractVersionRecord,
    RegistrationResult,
    VersionDraft,
)
from notary.app.store.version_store import VersionStore
from notary.app.utils.hashing import DEFAULT_HASH_ALGORITHM, compute_digest

logger = logging.getLogger("notary.registration")


class RegistrationCoordinator:
    """Registers documents as new contract versions and anchors them."""

    def __init__(
        self,
        *,
        engine: CanonicalizationEngine,
        store: VersionStore,
        ledger: LedgerAnchor,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ) -> None:
        self._engine = engine
        self._store = store
        self._ledger = ledger
        self._hash_algorithm = hash_algorithm

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def register_document(
        self,
        *,
        data: bytes,
        file_name: str,
        file_type: FileType | str,
        contract_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register a document as the next version of a contract.

        A new contract named after the file is created when contract_id
        is not given.

        Raises:
            UnsupportedFormat, ExtractionError: nothing was persisted.
            NotFound: contract_id does not exist.
            AnchoringFailed: the version was persisted but not anchored.
        """
        document = await to_thread.run_sync(
            self._engine.extract, data, file_type
        )
        contract_hash = compute_digest(
            document.canonical_text, self._hash_algorithm
        )

        if contract_id is None:
            contract = await self._store.create_contract(
                name=file_name,
                tenant_id=tenant_id,
            )
        else:
            contract = await self._store.get_contract(contract_id)

        version = await self._store.append(
            VersionDraft(
                contract_id=contract.id,
                file_name=file_name,
                file_type=document.file_type,
                raw_text=document.raw_text,
                canonical_content=document.canonical_text,
                contract_hash=contract_hash,
                normalization_version=document.normalization_version,
                hash_algorithm=self._hash_algorithm,
                extractor=document.extractor,
            )
        )

        anchored = await self._anchor(version)
        return self._result(anchored)

    async def reanchor_version(self, version_id: str) -> RegistrationResult:
        """
        Re-attempt anchoring for a version persisted without a receipt.

        Raises:
            NotFound: unknown version.
            AlreadyAnchored: the version already has a receipt.
            AnchoringFailed: the ledger write failed again.
        """
        version = await self._store.get_version(version_id)
        if version.anchored:
            raise AlreadyAnchored(
                f"Version {version_id} is already anchored "
                f"({version.on_chain_tx_hash})"
            )

        logger.info(
            "reanchor_requested",
            extra={
                "contract_id": version.contract_id,
                "version_id": version.id,
                "version_label": version.version_label,
            },
        )

        anchored = await self._anchor(version)
        return self._result(anchored)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _anchor(self, version: ContractVersionRecord) -> ContractVersionRecord:
        # Once submitted, the ledger write and its receipt run to
        # completion even if the request is cancelled.
        with CancelScope(shield=True):
            try:
                tx_reference = await self._ledger.register(
                    contract_id=version.contract_id,
                    version_label=version.version_label,
                    content=version.canonical_content,
                    normalization_version=version.normalization_version,
                    hash_algorithm=version.hash_algorithm,
                )
            except (LedgerUnavailable, LedgerRejected) as exc:
                logger.error(
                    "ledger_anchor_failed",
                    extra={
                        "contract_id": version.contract_id,
                        "version_id": version.id,
                        "version_label": version.version_label,
                        "error_type": type(exc).__name__,
                        "error_detail": exc.message,
                    },
                )
                raise AnchoringFailed(version, exc) from exc

            return await self._store.record_anchor(version.id, tx_reference)

    @staticmethod
    def _result(version: ContractVersionRecord) -> RegistrationResult:
        return RegistrationResult(
            contract_id=version.contract_id,
            version_id=version.id,
            version_number=version.version_number,
            version_label=version.version_label,
            contract_hash=version.contract_hash,
            hash_algorithm=version.hash_algorithm,
            normalization_version=version.normalization_version,
            on_chain_tx_hash=version.on_chain_tx_hash,
        )
