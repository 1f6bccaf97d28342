"""
Content digests for canonical document text.

This module provides the low-level digest operation used by both the
registration and verification pipelines.

Current scope:
- Deterministic hashing of canonical text under a named algorithm

Explicit non-scope:
- Canonicalization or text extraction
- Any comparison against the ledger (handled by the coordinators)

IMPORTANT DESIGN RULE:
- Canonicalization MUST occur outside this module.
- The locally computed digest is a fast-path copy. The ledger's own
  digest is authoritative for "was this content registered".
"""

import hashlib
import hmac
from typing import Any, Callable, Dict

from notary.app.core.errors import UnsupportedAlgorithm


DEFAULT_HASH_ALGORITHM = "SHA-256"

# Algorithm tags as recorded in version metadata and sent to the ledger.
SUPPORTED_ALGORITHMS: Dict[str, Callable[..., Any]] = {
    "SHA-256": hashlib.sha256,
    "SHA-512": hashlib.sha512,
    "SHA3-256": hashlib.sha3_256,
}


def compute_digest(
    canonical_text: str,
    algorithm: str = DEFAULT_HASH_ALGORITHM,
) -> str:
    """
    Compute the hex digest of canonical text.

    IMPORTANT:
    - Input MUST already be canonicalized.
    - Text is encoded as UTF-8; no other transformation occurs here.

    Args:
        canonical_text:
            Output of the canonicalization engine.
        algorithm:
            One of SUPPORTED_ALGORITHMS.

    Returns:
        Lowercase hexadecimal digest without prefix.
        Example: ``a591a6d40bf420404a011733cfb7b190...``
    """
    if not isinstance(canonical_text, str):
        raise TypeError(
            "compute_digest expects canonical text, "
            f"got {type(canonical_text).__name__}"
        )

    try:
        factory = SUPPORTED_ALGORITHMS[algorithm]
    except KeyError:
        raise UnsupportedAlgorithm(
            f"Unsupported hash algorithm '{algorithm}'. "
            f"Allowed values: {sorted(SUPPORTED_ALGORITHMS)}"
        ) from None

    return factory(canonical_text.encode("utf-8")).hexdigest()


def digests_equal(left: str, right: str) -> bool:
    """Exact equality of two digest strings, without normalization."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def digest_matches(canonical_text: str, algorithm: str, expected: str) -> bool:
    """Re-derive the digest of stored canonical text and compare."""
    return digests_equal(compute_digest(canonical_text, algorithm), expected)
