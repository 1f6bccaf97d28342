"""
Format-specific raw text extractors.

Each extractor turns uploaded bytes into raw (un-normalized) text. They
are pluggable strategies registered per FileType; adding a format means
adding an extractor here, nothing downstream changes.

IMPORTANT DESIGN CONSTRAINTS
----------------------------
- No heuristics, OCR, or probabilistic logic is permitted.
- Failure to produce text MUST raise ExtractionError. An empty string is
  never returned in place of an error.
- PDF and DOCX extraction depend on how the parsing library reconstructs
  layout. Their output is stable for a given library version but is not
  guaranteed across versions. Extractors report their identity so this
  risk is recorded per version instead of being tolerated silently.
"""

from __future__ import annotations

import io
import logging
import zipfile
from enum import Enum
from importlib.metadata import PackageNotFoundError, version
from typing import Dict, Iterator, Protocol

from notary.app.core.errors import ExtractionError, UnsupportedFormat

logger = logging.getLogger("notary.canonicalization")


class FileType(str, Enum):
    """Declared document formats accepted by the pipeline."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"


def _library_version(distribution: str) -> str:
    try:
        return version(distribution)
    except PackageNotFoundError:
        return "unknown"


class TextExtractor(Protocol):
    """
    Interface for raw text extraction.

    Implementations must be deterministic for a fixed library version.
    """

    file_type: FileType
    layout_sensitive: bool

    @property
    def identity(self) -> str:
        ...

    def extract(self, data: bytes) -> str:
        ...


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

class PlainTextExtractor:
    """Strict UTF-8 decode. Invalid byte sequences are rejected."""

    file_type = FileType.TXT
    layout_sensitive = False

    @property
    def identity(self) -> str:
        return "utf-8/strict"

    def extract(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(
                f"Text file is not valid UTF-8 (byte offset {exc.start})"
            ) from exc


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

class PdfTextExtractor:
    """
    Extract the text layer from PDF page content streams via pypdf.

    Pages are joined with a single newline. Encrypted documents are
    rejected rather than decrypted with an empty password.
    """

    file_type = FileType.PDF
    layout_sensitive = True

    @property
    def identity(self) -> str:
        return f"pypdf/{_library_version('pypdf')}"

    def extract(self, data: bytes) -> str:
        import pypdf
        from pypdf.errors import DependencyError, PyPdfError

        try:
            reader = pypdf.PdfReader(io.BytesIO(data))
        except DependencyError as exc:
            # AES handlers need an optional crypto backend; either way the
            # document is encrypted.
            raise ExtractionError("Encrypted PDFs cannot be canonicalized") from exc
        except (PyPdfError, ValueError, OSError) as exc:
            raise ExtractionError(f"Unreadable PDF: {exc}") from exc

        if reader.is_encrypted:
            raise ExtractionError("Encrypted PDFs cannot be canonicalized")

        pages = []
        try:
            for page in reader.pages:
                # extract_text() is deterministic with respect to the PDF's
                # content streams and ToUnicode mappings.
                pages.append(page.extract_text() or "")
        except (PyPdfError, DependencyError, KeyError, ValueError, TypeError) as exc:
            raise ExtractionError(f"PDF text extraction failed: {exc}") from exc

        return "\n".join(pages)


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

class DocxTextExtractor:
    """
    Extract paragraph text from a DOCX body via python-docx.

    Body paragraphs and the paragraphs of table cells are emitted in
    document order, each followed by a blank line. Merged table cells are
    emitted once.
    """

    file_type = FileType.DOCX
    layout_sensitive = True

    @property
    def identity(self) -> str:
        return f"python-docx/{_library_version('python-docx')}"

    def extract(self, data: bytes) -> str:
        import docx
        from docx.opc.exceptions import PackageNotFoundError as DocxPackageError
        from lxml.etree import XMLSyntaxError

        try:
            document = docx.Document(io.BytesIO(data))
        except (
            DocxPackageError,
            zipfile.BadZipFile,
            XMLSyntaxError,
            KeyError,
            ValueError,
        ) as exc:
            raise ExtractionError(f"Unreadable DOCX: {exc}") from exc

        return "".join(
            f"{text}\n\n" for text in self._iter_paragraph_text(document)
        )

    @staticmethod
    def _iter_paragraph_text(document) -> Iterator[str]:
        from docx.oxml.ns import qn
        from docx.table import Table
        from docx.text.paragraph import Paragraph

        body = document.element.body
        for child in body.iterchildren():
            if child.tag == qn("w:p"):
                yield Paragraph(child, document).text
            elif child.tag == qn("w:tbl"):
                seen = set()
                for row in Table(child, document).rows:
                    for cell in row.cells:
                        if id(cell._tc) in seen:
                            continue
                        seen.add(id(cell._tc))
                        for paragraph in cell.paragraphs:
                            yield paragraph.text


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DEFAULT_EXTRACTORS: Dict[FileType, TextExtractor] = {
    FileType.PDF: PdfTextExtractor(),
    FileType.DOCX: DocxTextExtractor(),
    FileType.TXT: PlainTextExtractor(),
}


def coerce_file_type(declared_type: object) -> FileType:
    """Map a declared type (enum or string) onto FileType."""
    if isinstance(declared_type, FileType):
        return declared_type
    try:
        return FileType(str(declared_type).lower().lstrip("."))
    except ValueError:
        raise UnsupportedFormat(
            f"Unsupported file type '{declared_type}'. "
            "Only PDF, DOCX, and TXT are allowed."
        ) from None


_MIME_TYPES = {
    "application/pdf": FileType.PDF,
    (
        "application/vnd.openxmlformats-officedocument"
        ".wordprocessingml.document"
    ): FileType.DOCX,
    "text/plain": FileType.TXT,
}


def resolve_file_type(file_name: str | None, content_type: str | None) -> FileType:
    """
    Determine the declared type of an upload from its MIME type, falling
    back to the file extension.
    """
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in _MIME_TYPES:
            return _MIME_TYPES[mime]

    if file_name and "." in file_name:
        extension = file_name.rsplit(".", 1)[1]
        try:
            return FileType(extension.lower())
        except ValueError:
            pass

    logger.info(
        "unsupported_upload_type",
        extra={"upload_name": file_name, "content_type": content_type},
    )
    raise UnsupportedFormat(
        "Unsupported file type. Only PDF, DOCX, and TXT are allowed."
    )
