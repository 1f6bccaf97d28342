"""
Centralized configuration management for the Notary service.

Pydantic v2 settings management to enforce strict validation,
zero secret leakage, and fast-failure on invalid configuration.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notary.app.utils.hashing import DEFAULT_HASH_ALGORITHM, SUPPORTED_ALGORITHMS
from notary.app.canonicalization.normalizer import NORMALIZATION_VERSION, NORMALIZERS


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(
        default=None,
        description="Sensitive credential, redacted from logs",
    ),
]

PositiveSeconds = Annotated[
    float,
    Field(gt=0, le=3600),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if the ledger backend is selected but not
    reachable by configuration, or if an unsupported hash algorithm
    is requested.
    """

    # ---------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------

    database_url: Annotated[
        str,
        Field(
            default="sqlite+aiosqlite:///./notary.db",
            min_length=1,
            description="Async SQLAlchemy URL for the version store",
        ),
    ]

    # ---------------------------------------------------------------------
    # Ledger
    # ---------------------------------------------------------------------

    ledger_backend: Annotated[
        Literal["jsonrpc", "memory"],
        Field(
            default="jsonrpc",
            description=(
                "Ledger adapter. 'memory' is a process-local fake and "
                "provides no tamper evidence."
            ),
        ),
    ]

    ledger_rpc_url: Annotated[
        Optional[AnyHttpUrl],
        Field(
            default=None,
            description="JSON-RPC endpoint of the anchoring ledger",
        ),
    ]

    ledger_api_key: SensitiveEnv

    ledger_request_timeout_seconds: Annotated[
        PositiveSeconds,
        Field(
            default=30.0,
            description="Upper bound for a single ledger HTTP round trip",
        ),
    ]

    ledger_confirmation_timeout_seconds: Annotated[
        PositiveSeconds,
        Field(
            default=120.0,
            description=(
                "Upper bound for waiting on write confirmation. On expiry "
                "the version stays unanchored."
            ),
        ),
    ]

    ledger_read_attempts: Annotated[
        int,
        Field(
            default=3,
            ge=1,
            le=10,
            description="Attempts for read calls on transport errors",
        ),
    ]

    # ---------------------------------------------------------------------
    # Integrity pipeline
    # ---------------------------------------------------------------------

    hash_algorithm: Annotated[
        str,
        Field(
            default=DEFAULT_HASH_ALGORITHM,
            description="Digest algorithm used end-to-end",
        ),
    ]

    normalization_version: Annotated[
        str,
        Field(
            default=NORMALIZATION_VERSION,
            description="Canonicalization scheme tag recorded per version",
        ),
    ]

    # ---------------------------------------------------------------------
    # Operational Boundaries
    # ---------------------------------------------------------------------

    max_upload_size_mb: Annotated[
        int,
        Field(
            default=10,
            ge=1,
            le=100,
            description="Maximum accepted upload size",
        ),
    ]

    log_level: Annotated[
        Literal["DEBUG", "INFO", "WARNING", "ERROR"],
        Field(default="INFO"),
    ]

    model_config = SettingsConfigDict(
        env_prefix="NOTARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ---------------------------------------------------------------------
    # Validators
    # ---------------------------------------------------------------------

    @field_validator("hash_algorithm")
    @classmethod
    def validate_hash_algorithm(cls, v: str) -> str:
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(
                f"Unsupported hash_algorithm '{v}'. "
                f"Allowed values: {sorted(SUPPORTED_ALGORITHMS)}"
            )
        return v

    @field_validator("normalization_version")
    @classmethod
    def validate_normalization_version(cls, v: str) -> str:
        if v not in NORMALIZERS:
            raise ValueError(
                f"Unknown normalization scheme '{v}'. "
                f"Allowed values: {sorted(NORMALIZERS)}"
            )
        return v

    @model_validator(mode="after")
    def rpc_url_required_for_jsonrpc(self) -> "Settings":
        if self.ledger_backend == "jsonrpc" and self.ledger_rpc_url is None:
            raise ValueError(
                "ledger_backend is 'jsonrpc' but ledger_rpc_url "
                "is not configured."
            )
        return self

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for application settings.

    Uses an explicit singleton pattern within the FastAPI lifecycle.
    """
    return Settings()  # singleton within process
