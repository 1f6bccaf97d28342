"""
Canonicalization engine and format extractors.

PDF fixtures are built with pikepdf, DOCX fixtures with python-docx.
"""

import pytest

from notary.app.canonicalization.engine import CanonicalizationEngine
from notary.app.canonicalization.extractors import (
    FileType,
    coerce_file_type,
    resolve_file_type,
)
from notary.app.core.errors import ExtractionError, UnsupportedFormat
from notary.tests.fixtures.docx_factory import (
    merged_cell_docx,
    paragraphs_docx,
    table_docx,
)
from notary.tests.fixtures.pdf_factory import encrypted_pdf, text_pdf


@pytest.fixture
def engine():
    return CanonicalizationEngine()


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def test_txt_hello_world(engine):
    document = engine.extract(b"Hello World", FileType.TXT)

    assert document.canonical_text == "Hello World"
    assert document.raw_text == "Hello World"
    assert document.normalization_version == "1.0"
    assert document.extractor == "utf-8/strict"
    assert document.layout_sensitive is False


def test_engine_tags_configured_scheme():
    document = CanonicalizationEngine(normalization_version="1.0").extract(b"Hello World", "txt")

    assert document.normalization_version == "1.0"


def test_unknown_scheme_is_refused():
    with pytest.raises(ValueError):
        CanonicalizationEngine(normalization_version="2.0")


def test_txt_is_normalized(engine):
    raw = b"  Clause 1.\r\n\r\n\r\n\tThe  parties   agree.  \r\n"
    assert engine.canonicalize(raw, "txt") == "Clause 1.\n\nThe parties agree."


def test_txt_utf8_bom_is_trimmed(engine):
    assert engine.canonicalize(b"\xef\xbb\xbfHello World", FileType.TXT) == "Hello World"


def test_txt_invalid_utf8_is_rejected(engine):
    with pytest.raises(ExtractionError):
        engine.extract(b"Hello \xff World", FileType.TXT)


@pytest.mark.parametrize("data", [b"", b"   \r\n\t  "])
def test_empty_documents_are_rejected(engine, data):
    with pytest.raises(ExtractionError):
        engine.extract(data, FileType.TXT)


def test_identical_bytes_yield_identical_text(engine):
    data = "Pr\u00e9ambule\n\nArticle 1".encode("utf-8")
    assert engine.canonicalize(data, "txt") == engine.canonicalize(data, "txt")


# ---------------------------------------------------------------------------
# Declared type
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("declared", ["rtf", "doc", "", "image/png"])
def test_unsupported_declared_type(engine, declared):
    with pytest.raises(UnsupportedFormat):
        engine.extract(b"Hello World", declared)


@pytest.mark.parametrize(
    "declared, expected",
    [("pdf", FileType.PDF), (".DOCX", FileType.DOCX), ("TXT", FileType.TXT)],
)
def test_coerce_file_type(declared, expected):
    assert coerce_file_type(declared) is expected


def test_engine_without_extractor_for_type():
    engine = CanonicalizationEngine(extractors={})
    assert engine.supported_types == frozenset()
    with pytest.raises(UnsupportedFormat):
        engine.extract(b"Hello World", FileType.TXT)


@pytest.mark.parametrize(
    "file_name, content_type, expected",
    [
        ("contract.pdf", "application/pdf", FileType.PDF),
        ("contract.bin", "text/plain; charset=utf-8", FileType.TXT),
        ("Contract.DOCX", "application/octet-stream", FileType.DOCX),
        ("contract.txt", None, FileType.TXT),
    ],
)
def test_resolve_upload_type(file_name, content_type, expected):
    assert resolve_file_type(file_name, content_type) is expected


@pytest.mark.parametrize(
    "file_name, content_type",
    [("notes.rtf", "application/rtf"), ("noextension", None), (None, None)],
)
def test_resolve_upload_type_rejects(file_name, content_type):
    with pytest.raises(UnsupportedFormat):
        resolve_file_type(file_name, content_type)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

def test_pdf_hello_world(engine):
    document = engine.extract(text_pdf("Hello World"), FileType.PDF)

    assert document.canonical_text == "Hello World"
    assert document.extractor.startswith("pypdf/")
    assert document.layout_sensitive is True


def test_pdf_pages_are_separated_by_newline(engine):
    text = engine.canonicalize(text_pdf("Page one", "Page two"), FileType.PDF)
    assert text == "Page one\nPage two"


def test_pdf_extraction_is_deterministic(engine):
    data = text_pdf("Article 1 (Scope)")
    assert engine.canonicalize(data, "pdf") == engine.canonicalize(data, "pdf")


def test_pdf_garbage_is_rejected(engine):
    with pytest.raises(ExtractionError):
        engine.extract(b"not a pdf at all", FileType.PDF)


@pytest.mark.parametrize("aes", [False, True], ids=["rc4", "aes256"])
def test_pdf_encrypted_is_rejected(engine, aes):
    with pytest.raises(ExtractionError, match="Encrypted"):
        engine.extract(encrypted_pdf(aes=aes), FileType.PDF)


def test_pdf_without_text_layer_is_rejected(engine):
    # A blank page has no text; scanned documents behave the same way.
    with pytest.raises(ExtractionError):
        engine.extract(text_pdf(""), FileType.PDF)


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def test_docx_paragraphs(engine):
    data = paragraphs_docx("First clause.", "Second   clause.")
    document = engine.extract(data, FileType.DOCX)

    assert document.canonical_text == "First clause.\n\nSecond clause."
    assert document.extractor.startswith("python-docx/")
    assert document.layout_sensitive is True


def test_docx_table_cells_in_document_order(engine):
    data = table_docx("Parties", ["Buyer", "Seller"], "Signed")
    assert engine.canonicalize(data, "docx") == "Parties\n\nBuyer\n\nSeller\n\nSigned"


def test_docx_merged_cell_emitted_once(engine):
    text = engine.canonicalize(merged_cell_docx("Parties", "Shared", "Signed"), "docx")

    assert text.count("Shared") == 1
    assert text == "Parties\n\nShared\n\nSigned"


def test_docx_garbage_is_rejected(engine):
    with pytest.raises(ExtractionError):
        engine.extract(b"PK\x03\x04 not really a zip", FileType.DOCX)


def test_docx_without_text_is_rejected(engine):
    with pytest.raises(ExtractionError):
        engine.extract(paragraphs_docx("", "   "), FileType.DOCX)
