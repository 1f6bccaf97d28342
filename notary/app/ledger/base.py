"""
Ledger anchoring capability.

The ledger is the source of truth for "was this exact content ever
registered". The local version store is a cache/index on top of it.

Contract expected from any adapter:

- register(): durable, externally visible, write-once per
  (contract_id, version_label). Returns only after the write is
  confirmed. Raises LedgerUnavailable or LedgerRejected; never retried
  automatically by the caller.
- fetch(): read-only. Returns None when nothing was anchored for the
  key. None is distinct from any digest string, including all zeros.
  Digests are returned as bare lowercase hex. Read failures raise
  LedgerUnavailable or LedgerRejected.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class LedgerAnchor(Protocol):
    """Interface for anchoring digests on an external immutable ledger."""

    async def register(
        self,
        *,
        contract_id: str,
        version_label: str,
        content: str,
        normalization_version: str,
        hash_algorithm: str,
    ) -> str:
        ...

    async def fetch(
        self,
        *,
        contract_id: str,
        version_label: str,
    ) -> Optional[str]:
        ...
