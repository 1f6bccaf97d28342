from .extractors import (
    FileType,
    TextExtractor,
    PdfTextExtractor,
    DocxTextExtractor,
    PlainTextExtractor,
    resolve_file_type,
)
from .normalizer import NORMALIZATION_VERSION, normalize_text
from .engine import CanonicalDocument, CanonicalizationEngine

__all__ = [
    "FileType",
    "TextExtractor",
    "PdfTextExtractor",
    "DocxTextExtractor",
    "PlainTextExtractor",
    "resolve_file_type",
    "NORMALIZATION_VERSION",
    "normalize_text",
    "CanonicalDocument",
    "CanonicalizationEngine",
]
