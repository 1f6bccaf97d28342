"""
Verification coordinator.

A verification request moves through terminal states only; nothing is
retried and nothing is persisted:

    1. Canonicalize and digest the submitted document exactly as at
       registration
    2. Resolve the target version (explicit label verbatim, otherwise the
       contract's highest version). No versions at all -> NOT_FOUND
    3. Fetch the anchored digest. Absent -> NOT_VERIFIED
    4. Compare exactly. Equal -> VERIFIED, unequal -> VERSION_MISMATCH

IMPORTANT:
- NOT_FOUND and VERSION_MISMATCH are results, not exceptions.
- A ledger read failure degrades to NOT_VERIFIED. It can never produce
  VERIFIED.
- Canonicalization errors (unsupported format, unreadable document) are
  client errors and propagate.
"""

from __future__ import annotations

import logging
from typing import Optional

from anyio import to_thread

from notary.app.canonicalization.engine import CanonicalDocument, CanonicalizationEngine
from notary.app.canonicalization.extractors import FileType
from notary.app.core.errors import LedgerRejected, LedgerUnavailable
from notary.app.ledger.base import LedgerAnchor
from notary.app.schemas.records import (
    UNKNOWN_VERSION,
    ContractVersionRecord,
    VerificationResult,
    VerificationStatus,
    format_version_label,
    parse_version_label,
)
from notary.app.store.version_store import VersionStore
from notary.app.utils.hashing import (
    DEFAULT_HASH_ALGORITHM,
    compute_digest,
    digests_equal,
)

logger = logging.getLogger("notary.verification")


class VerificationCoordinator:
    """Compares a submitted document with the anchored record."""

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

    async def verify_document(
        self,
        *,
        data: bytes,
        file_type: FileType | str,
        contract_id: str,
        version_label: Optional[str] = None,
    ) -> VerificationResult:
        document = await to_thread.run_sync(
            self._engine.extract, data, file_type
        )

        # ------------------------------------------------------------------
        # 1. Resolve target version
        # ------------------------------------------------------------------
        latest = None
        if await self._store.contract_exists(contract_id):
            latest = await self._store.latest_version(contract_id)

        if latest is None:
            return self._finish(
                contract_id=contract_id,
                version=None,
                version_label=version_label,
                submitted_hash=compute_digest(
                    document.canonical_text, self._hash_algorithm
                ),
                hash_algorithm=self._hash_algorithm,
                on_chain_hash=None,
                status=VerificationStatus.NOT_FOUND,
                details="No versions registered for this contract",
            )

        if version_label is None:
            target_label = format_version_label(latest.version_number)
            version: Optional[ContractVersionRecord] = latest
        else:
            target_label = version_label
            version = await self._resolve_label(contract_id, version_label)

        # Digest under the algorithm the target version was registered with.
        hash_algorithm = (
            version.hash_algorithm if version is not None else self._hash_algorithm
        )

        # ------------------------------------------------------------------
        # 2. Digest the submitted document
        # ------------------------------------------------------------------
        submitted_hash = compute_digest(document.canonical_text, hash_algorithm)

        # ------------------------------------------------------------------
        # 3. Fetch anchored digest
        # ------------------------------------------------------------------
        try:
            on_chain_hash = await self._ledger.fetch(
                contract_id=contract_id,
                version_label=target_label,
            )
        except (LedgerUnavailable, LedgerRejected) as exc:
            logger.warning(
                "ledger_read_degraded",
                extra={
                    "contract_id": contract_id,
                    "version_label": target_label,
                    "error_detail": exc.message,
                },
            )
            return self._finish(
                contract_id=contract_id,
                version=version,
                version_label=target_label,
                submitted_hash=submitted_hash,
                hash_algorithm=hash_algorithm,
                on_chain_hash=None,
                status=VerificationStatus.NOT_VERIFIED,
                details=(
                    f"Ledger could not be read for version {target_label}; "
                    "integrity is unproven"
                ),
            )

        if on_chain_hash is None:
            return self._finish(
                contract_id=contract_id,
                version=version,
                version_label=target_label,
                submitted_hash=submitted_hash,
                hash_algorithm=hash_algorithm,
                on_chain_hash=None,
                status=VerificationStatus.NOT_VERIFIED,
                details=f"Version {target_label} was never anchored on the ledger",
            )

        # ------------------------------------------------------------------
        # 4. Compare
        # ------------------------------------------------------------------
        if digests_equal(submitted_hash, on_chain_hash):
            status = VerificationStatus.VERIFIED
            details = None
        else:
            status = VerificationStatus.VERSION_MISMATCH
            details = (
                "Document hash does not match the ledger record "
                f"for {target_label}"
            )
            note = self._extractor_note(document, version)
            if note:
                details = f"{details}. {note}"

        return self._finish(
            contract_id=contract_id,
            version=version,
            version_label=target_label,
            submitted_hash=submitted_hash,
            hash_algorithm=hash_algorithm,
            on_chain_hash=on_chain_hash,
            status=status,
            details=details,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_label(
        self,
        contract_id: str,
        version_label: str,
    ) -> Optional[ContractVersionRecord]:
        version_number = parse_version_label(version_label)
        if version_number is None:
            return None
        return await self._store.get_version_by_number(contract_id, version_number)

    @staticmethod
    def _extractor_note(
        document: CanonicalDocument,
        version: Optional[ContractVersionRecord],
    ) -> Optional[str]:
        """
        Flag a mismatch that may stem from extractor drift rather than
        from a content change.
        """
        if version is None or not document.layout_sensitive:
            return None
        if document.extractor == version.extractor:
            return None
        return (
            f"Registered with extractor {version.extractor}, verified with "
            f"{document.extractor}; layout reconstruction may differ"
        )

    @staticmethod
    def _finish(
        *,
        contract_id: str,
        version: Optional[ContractVersionRecord],
        version_label: Optional[str],
        submitted_hash: str,
        hash_algorithm: str,
        on_chain_hash: Optional[str],
        status: VerificationStatus,
        details: Optional[str],
    ) -> VerificationResult:
        result = VerificationResult(
            contract_id=contract_id,
            version_id=version.id if version is not None else UNKNOWN_VERSION,
            version_label=version_label,
            submitted_hash=submitted_hash,
            on_chain_hash=on_chain_hash,
            hash_algorithm=hash_algorithm,
            status=status,
            details=details,
        )

        logger.info(
            "verification_completed",
            extra={
                "contract_id": contract_id,
                "version_label": version_label,
                "status": status.value,
            },
        )
        return result
