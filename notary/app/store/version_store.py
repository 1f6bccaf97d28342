"""
Append-only version store.

Owns the per-contract version sequence. The only contended resource of
the pipeline is (contract_id, version_number); it is protected by a
unique constraint in the database and by a single-statement insert
whose version number is computed by a subquery:

    INSERT INTO contract_versions (..., version_number)
    VALUES (..., (SELECT coalesce(max(version_number), 0) + 1
                  FROM contract_versions WHERE contract_id = :id))

Two concurrent uploads that still race to the same number hit the
unique constraint; the loser retries once and surfaces VersionConflict
if it collides again.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notary.app.core.errors import AlreadyAnchored, NotFound, VersionConflict
from notary.app.schemas.records import (
    ContractRecord,
    ContractVersionRecord,
    VersionDraft,
)
from notary.app.store.models import AnchorReceipt, Contract, ContractVersion

logger = logging.getLogger("notary.store")


class VersionStore:
    """
    Persistence for contracts, versions and ledger receipts.

    Every public method runs in its own session and transaction and
    returns detached pydantic records, never ORM instances.
    """

    # One initial attempt plus one retry on a uniqueness violation.
    APPEND_ATTEMPTS = 2

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def create_contract(
        self,
        *,
        name: str,
        tenant_id: Optional[str] = None,
    ) -> ContractRecord:
        async with self._session_factory() as session:
            contract = Contract(name=name, tenant_id=tenant_id)
            session.add(contract)
            await session.commit()

            logger.info(
                "contract_created",
                extra={"contract_id": contract.id, "tenant_id": tenant_id},
            )
            return ContractRecord.model_validate(contract)

    async def get_contract(self, contract_id: str) -> ContractRecord:
        async with self._session_factory() as session:
            contract = await session.get(Contract, contract_id)
            if contract is None:
                raise NotFound("Contract", contract_id)
            return ContractRecord.model_validate(contract)

    async def list_contracts(
        self,
        tenant_id: Optional[str] = None,
    ) -> List[ContractRecord]:
        """Contracts newest first, restricted to one tenant when given."""
        async with self._session_factory() as session:
            query = select(Contract).order_by(Contract.created_at.desc(), Contract.id)
            if tenant_id is not None:
                query = query.where(Contract.tenant_id == tenant_id)
            result = await session.scalars(query)
            return [ContractRecord.model_validate(c) for c in result]

    async def contract_exists(self, contract_id: str) -> bool:
        async with self._session_factory() as session:
            return await session.get(Contract, contract_id) is not None

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    async def next_version_number(self, contract_id: str) -> int:
        """
        One more than the current maximum, or 1 if none exist.

        Informational only: append() computes the number atomically with
        the insert and does not rely on this value.
        """
        async with self._session_factory() as session:
            current = await session.scalar(
                select(func.max(ContractVersion.version_number)).where(
                    ContractVersion.contract_id == contract_id
                )
            )
            return (current or 0) + 1

    async def append(self, draft: VersionDraft) -> ContractVersionRecord:
        """
        Persist a new version with the next number in its contract.

        Raises:
            NotFound: the contract does not exist.
            VersionConflict: number assignment collided twice.
        """
        if not await self.contract_exists(draft.contract_id):
            raise NotFound("Contract", draft.contract_id)

        for attempt in range(1, self.APPEND_ATTEMPTS + 1):
            try:
                record = await self._insert_next(draft)
            except IntegrityError as exc:
                logger.warning(
                    "version_number_conflict",
                    extra={
                        "contract_id": draft.contract_id,
                        "attempt": attempt,
                    },
                )
                if attempt == self.APPEND_ATTEMPTS:
                    raise VersionConflict(
                        "Concurrent upload took the same version number "
                        f"for contract {draft.contract_id}; retry the upload"
                    ) from exc
                continue

            logger.info(
                "version_appended",
                extra={
                    "contract_id": record.contract_id,
                    "version_id": record.id,
                    "version_number": record.version_number,
                    "contract_hash": record.contract_hash,
                },
            )
            return record

        raise AssertionError("unreachable")

    async def _insert_next(self, draft: VersionDraft) -> ContractVersionRecord:
        next_number = (
            select(func.coalesce(func.max(ContractVersion.version_number), 0) + 1)
            .where(ContractVersion.contract_id == draft.contract_id)
            .correlate(None)
            .scalar_subquery()
        )

        async with self._session_factory() as session:
            version = ContractVersion(
                contract_id=draft.contract_id,
                version_number=next_number,
                file_name=draft.file_name,
                file_type=draft.file_type.value,
                raw_text=draft.raw_text,
                canonical_content=draft.canonical_content,
                contract_hash=draft.contract_hash,
                normalization_version=draft.normalization_version,
                hash_algorithm=draft.hash_algorithm,
                extractor=draft.extractor,
                anchor=None,
            )
            session.add(version)
            try:
                await session.flush()
                # version_number was computed by the subquery
                await session.refresh(version, attribute_names=["version_number"])
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise

            return ContractVersionRecord.model_validate(version)

    async def get_version(self, version_id: str) -> ContractVersionRecord:
        async with self._session_factory() as session:
            version = await session.get(ContractVersion, version_id)
            if version is None:
                raise NotFound("Version", version_id)
            return ContractVersionRecord.model_validate(version)

    async def get_version_by_number(
        self,
        contract_id: str,
        version_number: int,
    ) -> Optional[ContractVersionRecord]:
        async with self._session_factory() as session:
            version = await session.scalar(
                select(ContractVersion).where(
                    ContractVersion.contract_id == contract_id,
                    ContractVersion.version_number == version_number,
                )
            )
            if version is None:
                return None
            return ContractVersionRecord.model_validate(version)

    async def latest_version(self, contract_id: str) -> Optional[ContractVersionRecord]:
        async with self._session_factory() as session:
            version = await session.scalar(
                select(ContractVersion)
                .where(ContractVersion.contract_id == contract_id)
                .order_by(ContractVersion.version_number.desc())
                .limit(1)
            )
            if version is None:
                return None
            return ContractVersionRecord.model_validate(version)

    async def list_versions(self, contract_id: str) -> List[ContractVersionRecord]:
        """All versions of a contract, newest first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(ContractVersion)
                .where(ContractVersion.contract_id == contract_id)
                .order_by(ContractVersion.version_number.desc())
            )
            return [ContractVersionRecord.model_validate(v) for v in result]

    async def list_unanchored(self, contract_id: str) -> List[ContractVersionRecord]:
        """Versions without a ledger receipt, oldest first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(ContractVersion)
                .outerjoin(AnchorReceipt)
                .where(
                    ContractVersion.contract_id == contract_id,
                    AnchorReceipt.id.is_(None),
                )
                .order_by(ContractVersion.version_number.asc())
            )
            return [ContractVersionRecord.model_validate(v) for v in result]

    # ------------------------------------------------------------------
    # Ledger receipts
    # ------------------------------------------------------------------

    async def record_anchor(
        self,
        version_id: str,
        tx_reference: str,
    ) -> ContractVersionRecord:
        """
        Attach the ledger transaction reference to a version.

        Raises:
            NotFound: unknown version.
            AlreadyAnchored: a receipt already exists for the version.
        """
        async with self._session_factory() as session:
            version = await session.get(ContractVersion, version_id)
            if version is None:
                raise NotFound("Version", version_id)

            if version.anchor is not None:
                raise AlreadyAnchored(
                    f"Version {version_id} already has a ledger receipt"
                )

            version.anchor = AnchorReceipt(tx_reference=tx_reference)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise AlreadyAnchored(
                    f"Version {version_id} already has a ledger receipt"
                ) from exc

            logger.info(
                "version_anchored",
                extra={
                    "version_id": version_id,
                    "tx_reference": tx_reference,
                },
            )
            return ContractVersionRecord.model_validate(version)
