"""
Canonicalization engine.

Turns uploaded bytes plus a declared type into the canonical text that
is the sole input to hashing. The engine is pure and stateless; it is
safe to call concurrently from worker threads.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from notary.app.canonicalization.extractors import (
    DEFAULT_EXTRACTORS,
    FileType,
    TextExtractor,
    coerce_file_type,
)
from notary.app.canonicalization.normalizer import (
    NORMALIZATION_VERSION,
    NORMALIZERS,
)
from notary.app.core.errors import ExtractionError, UnsupportedFormat

logger = logging.getLogger("notary.canonicalization")


class CanonicalDocument(BaseModel):
    """
    Result of canonicalizing one document.

    - raw_text: extractor output before normalization
    - canonical_text: normalized text, input to hashing
    - extractor: "<library>/<version>" of the extractor used
    - layout_sensitive: True when the extractor reconstructs layout and
      its output may change across library versions
    """

    file_type: FileType
    raw_text: str
    canonical_text: str
    normalization_version: str
    extractor: str
    layout_sensitive: bool

    model_config = ConfigDict(frozen=True)


class CanonicalizationEngine:
    """
    Deterministic extraction and normalization.

    Given identical bytes and declared type, the canonical text is
    byte-identical across runs.
    """

    def __init__(
        self,
        extractors: Optional[Mapping[FileType, TextExtractor]] = None,
        *,
        normalization_version: str = NORMALIZATION_VERSION,
    ) -> None:
        if normalization_version not in NORMALIZERS:
            raise ValueError(
                f"Unknown normalization scheme '{normalization_version}'"
            )
        self._extractors = dict(
            extractors if extractors is not None else DEFAULT_EXTRACTORS
        )
        self.normalization_version = normalization_version
        self._normalize = NORMALIZERS[normalization_version]

    @property
    def supported_types(self) -> frozenset[FileType]:
        return frozenset(self._extractors)

    def extract(self, data: bytes, declared_type: FileType | str) -> CanonicalDocument:
        """
        Extract and normalize a document.

        Raises:
            UnsupportedFormat: declared type has no registered extractor.
            ExtractionError: the extractor failed or no text remained.
        """
        file_type = coerce_file_type(declared_type)
        extractor = self._extractors.get(file_type)
        if extractor is None:
            raise UnsupportedFormat(
                f"No extractor registered for file type '{file_type.value}'"
            )

        if not data:
            raise ExtractionError("Document is empty")

        raw_text = extractor.extract(data)
        canonical_text = self._normalize(raw_text)

        if not canonical_text:
            raise ExtractionError("Could not canonicalize document content")

        if extractor.layout_sensitive:
            logger.debug(
                "layout_sensitive_extraction",
                extra={
                    "file_type": file_type.value,
                    "extractor": extractor.identity,
                },
            )

        return CanonicalDocument(
            file_type=file_type,
            raw_text=raw_text,
            canonical_text=canonical_text,
            normalization_version=self.normalization_version,
            extractor=extractor.identity,
            layout_sensitive=extractor.layout_sensitive,
        )

    def canonicalize(self, data: bytes, declared_type: FileType | str) -> str:
        """Return only the canonical text of a document."""
        return self.extract(data, declared_type).canonical_text
