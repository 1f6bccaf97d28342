"""
Boundary schemas for the Notary service.

These are the shapes returned by the version store and the coordinators
and serialized by the HTTP API. Field names are snake_case in Python and
camelCase on the wire (e.g. ``contract_hash`` <-> ``contractHash``).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from notary.app.canonicalization.extractors import FileType


UNKNOWN_VERSION = "unknown"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------

class VerificationStatus(str, Enum):
    """
    Terminal outcome of one verification request.

    NOT_FOUND and VERSION_MISMATCH are results, not errors.
    """

    VERIFIED = "VERIFIED"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    NOT_VERIFIED = "NOT_VERIFIED"
    NOT_FOUND = "NOT_FOUND"


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------

class ContractRecord(_Record):
    id: str
    name: str
    tenant_id: Optional[str] = None
    created_at: datetime


class ContractVersionRecord(_Record):
    """
    One registered snapshot.

    on_chain_tx_hash is None while the version is not (yet) anchored.
    """

    id: str
    contract_id: str
    version_number: int = Field(..., ge=1)
    file_name: str
    file_type: FileType
    raw_text: str
    canonical_content: str
    contract_hash: str
    normalization_version: str = "1.0"
    hash_algorithm: str = "SHA-256"
    extractor: str
    on_chain_tx_hash: Optional[str] = None
    created_at: datetime

    @property
    def version_label(self) -> str:
        return format_version_label(self.version_number)

    @property
    def anchored(self) -> bool:
        return self.on_chain_tx_hash is not None


class ContractVersionSummary(_Record):
    """Version record without the document text, for listings."""

    id: str
    contract_id: str
    version_number: int
    version_label: str
    file_name: str
    file_type: FileType
    contract_hash: str
    normalization_version: str
    hash_algorithm: str
    extractor: str
    on_chain_tx_hash: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ContractVersionRecord) -> "ContractVersionSummary":
        return cls(
            version_label=record.version_label,
            **record.model_dump(exclude={"raw_text", "canonical_content"}),
        )


class CanonicalTextView(_Record):
    version_id: str
    version_label: str
    canonical_content: str
    contract_hash: str
    hash_algorithm: str
    normalization_version: str
    digest_consistent: bool = Field(
        ...,
        description=(
            "Whether re-hashing the stored canonical text reproduces "
            "the stored digest"
        ),
    )


class VersionDraft(BaseModel):
    """A version about to be appended; the store assigns its number."""

    contract_id: str
    file_name: str
    file_type: FileType
    raw_text: str
    canonical_content: str
    contract_hash: str
    normalization_version: str
    hash_algorithm: str
    extractor: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Transient results
# ---------------------------------------------------------------------------

class RegistrationResult(_Record):
    contract_id: str
    version_id: str
    version_number: int
    version_label: str
    contract_hash: str
    hash_algorithm: str
    normalization_version: str
    on_chain_tx_hash: Optional[str] = None


class VerificationResult(_Record):
    """
    Outcome of comparing a submitted document with the anchored record.

    Both digests are always present when they could be computed, so the
    caller can present forensic detail without re-deriving them.
    """

    contract_id: str
    version_id: str = UNKNOWN_VERSION
    version_label: Optional[str] = None
    submitted_hash: str
    on_chain_hash: Optional[str] = None
    hash_algorithm: str
    status: VerificationStatus
    details: Optional[str] = None


# ---------------------------------------------------------------------------
# Version labels
# ---------------------------------------------------------------------------

def format_version_label(version_number: int) -> str:
    """Return the boundary label ``v<N>`` for a version number."""
    if version_number < 1:
        raise ValueError(f"Version numbers start at 1, got {version_number}")
    return f"v{version_number}"


def parse_version_label(label: str) -> Optional[int]:
    """Return N for a well-formed ``v<N>`` label, otherwise None."""
    if len(label) < 2 or label[0] != "v" or not label[1:].isdigit():
        return None
    if not label[1:].isascii() or label[1] == "0":
        return None
    return int(label[1:])
