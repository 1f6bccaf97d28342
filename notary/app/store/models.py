"""
SQLAlchemy ORM models for the Notary version store.

Tables:
- contracts: logical document lineages
- contract_versions: append-only registered snapshots, unique per
  (contract_id, version_number)
- anchor_receipts: append-only ledger receipts, at most one per version

Rows in all three tables are inserted once and never updated.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notary.app.store.database import Base


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    SQLite has no timezone storage and hands back naive values; those are
    stored and read as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Contract(Base):
    """A logical document lineage. Identity is immutable once created."""
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    tenant_id: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    versions: Mapped[list["ContractVersion"]] = relationship(
        back_populates="contract",
        order_by="ContractVersion.version_number.desc()",
    )


class ContractVersion(Base):
    """
    One registered snapshot of a contract.

    contract_hash is a pure function of (canonical_content,
    hash_algorithm). The ledger receipt lives in anchor_receipts so this
    row is never updated after insert.
    """
    __tablename__ = "contract_versions"
    __table_args__ = (
        UniqueConstraint(
            "contract_id",
            "version_number",
            name="uq_contract_versions_contract_version",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    contract_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("contracts.id"),
        nullable=False,
        index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)

    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str] = mapped_column(String(8), nullable=False)

    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    canonical_content: Mapped[str] = mapped_column(Text, nullable=False)

    contract_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    normalization_version: Mapped[str] = mapped_column(
        String(16),
        default="1.0",
        nullable=False,
    )
    hash_algorithm: Mapped[str] = mapped_column(
        String(32),
        default="SHA-256",
        nullable=False,
    )
    extractor: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    contract: Mapped[Contract] = relationship(back_populates="versions")
    anchor: Mapped[Optional["AnchorReceipt"]] = relationship(
        back_populates="version",
        uselist=False,
        lazy="selectin",
    )

    @property
    def on_chain_tx_hash(self) -> Optional[str]:
        return self.anchor.tx_reference if self.anchor is not None else None


class AnchorReceipt(Base):
    """Ledger transaction reference for an anchored version."""
    __tablename__ = "anchor_receipts"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    version_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("contract_versions.id"),
        nullable=False,
        unique=True,
    )
    tx_reference: Mapped[str] = mapped_column(String(256), nullable=False)
    anchored_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    version: Mapped[ContractVersion] = relationship(back_populates="anchor")
