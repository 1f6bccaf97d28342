"""
Canonical text normalization (scheme "1.0").

The digest of a document is a function of the string produced here, so
every step is fixed and ordered. Changing any step requires a new
NORMALIZATION_VERSION.

Steps:
1. "\\r\\n" and lone "\\r" become "\\n".
2. Runs of spaces and tabs become a single space.
3. Three or more consecutive newlines become exactly two.
4. Every line is trimmed, then the whole text is trimmed.

Steps are applied once each and in this order. A line emptied by step 4
can therefore leave three newlines in a row; that is part of the scheme.
"""

from __future__ import annotations

import re

NORMALIZATION_VERSION = "1.0"

# Characters removed by trimming. Spelled out rather than relying on
# str.strip() so the set does not depend on the host's Unicode tables:
# tab, LF, VT, FF, CR, space, NBSP, Ogham space mark, U+2000..U+200A,
# line/paragraph separators, narrow NBSP, medium math space,
# ideographic space and BOM.
TRIM_CHARACTERS = "".join(
    chr(code_point)
    for code_point in (
        0x0009, 0x000A, 0x000B, 0x000C, 0x000D, 0x0020,
        0x00A0, 0x1680,
        *range(0x2000, 0x200B),
        0x2028, 0x2029, 0x202F, 0x205F, 0x3000, 0xFEFF,
    )
)

_HORIZONTAL_WHITESPACE = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Return the canonical form of extracted text."""
    if not text:
        return ""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _HORIZONTAL_WHITESPACE.sub(" ", normalized)
    normalized = _EXCESS_NEWLINES.sub("\n\n", normalized)
    normalized = "\n".join(
        line.strip(TRIM_CHARACTERS) for line in normalized.split("\n")
    )
    return normalized.strip(TRIM_CHARACTERS)


# Scheme tag -> normalizer. Versions are recorded per stored version and
# must stay resolvable for as long as such versions exist.
NORMALIZERS = {
    NORMALIZATION_VERSION: normalize_text,
}
