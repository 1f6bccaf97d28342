"""
Process-local ledger fake.

Used by tests and local development. It mirrors the production ledger's
observable contract: the ledger hashes the submitted content itself,
keys are write-once, and reads of unknown keys return None.

This adapter provides NO tamper evidence; its state lives and dies
with the process.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from notary.app.core.errors import LedgerRejected, NotaryError
from notary.app.utils.hashing import compute_digest

logger = logging.getLogger("notary.ledger.memory")


@dataclass(frozen=True)
class MemoryLedgerEntry:
    digest: str
    tx_reference: str
    normalization_version: str
    hash_algorithm: str


class InMemoryLedger:
    """
    Write-once in-memory ledger.

    Re-registering identical content under an existing key is idempotent
    and returns the original transaction reference. Different content
    under an existing key is rejected.

    Failure injection:
    - fail_next_register: raised once by the next register() call
    - fail_fetch: raised by every fetch() call while set
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], MemoryLedgerEntry] = {}
        self._lock = asyncio.Lock()
        self.fail_next_register: Optional[NotaryError] = None
        self.fail_fetch: Optional[NotaryError] = None
        self.register_calls: List[Tuple[str, str]] = []

    async def register(
        self,
        *,
        contract_id: str,
        version_label: str,
        content: str,
        normalization_version: str,
        hash_algorithm: str,
    ) -> str:
        self.register_calls.append((contract_id, version_label))

        if self.fail_next_register is not None:
            error, self.fail_next_register = self.fail_next_register, None
            raise error

        digest = compute_digest(content, hash_algorithm)
        key = (contract_id, version_label)

        async with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                if existing.digest == digest:
                    return existing.tx_reference
                raise LedgerRejected(
                    f"Version {version_label} of contract {contract_id} "
                    "is already registered"
                )

            tx_reference = "0x" + hashlib.sha256(
                f"{contract_id}:{version_label}:{digest}".encode("utf-8")
            ).hexdigest()

            self._entries[key] = MemoryLedgerEntry(
                digest=digest,
                tx_reference=tx_reference,
                normalization_version=normalization_version,
                hash_algorithm=hash_algorithm,
            )

        logger.debug(
            "memory_ledger_registered",
            extra={
                "contract_id": contract_id,
                "version_label": version_label,
                "tx_reference": tx_reference,
            },
        )
        return tx_reference

    async def fetch(
        self,
        *,
        contract_id: str,
        version_label: str,
    ) -> Optional[str]:
        if self.fail_fetch is not None:
            raise self.fail_fetch

        entry = self._entries.get((contract_id, version_label))
        return entry.digest if entry is not None else None

    def entry(self, contract_id: str, version_label: str) -> Optional[MemoryLedgerEntry]:
        return self._entries.get((contract_id, version_label))
