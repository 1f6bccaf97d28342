import logging
import uuid
from typing import Annotated, List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)

from notary.app.canonicalization.extractors import FileType, resolve_file_type
from notary.app.core.config import Settings
from notary.app.coordinator.registration import RegistrationCoordinator
from notary.app.coordinator.verification import VerificationCoordinator
from notary.app.schemas.records import (
    CanonicalTextView,
    ContractRecord,
    ContractVersionSummary,
    RegistrationResult,
    VerificationResult,
)
from notary.app.store.version_store import VersionStore
from notary.app.utils.hashing import digest_matches

logger = logging.getLogger("notary.api")

router = APIRouter(tags=["Document Integrity"])

# =============================================================================
# Dependency providers
# =============================================================================

def get_correlation_id(
    request: Request,
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """
    Extract or generate a correlation ID for end-to-end traceability.

    The ID is kept on request.state so error responses echo the same value.
    """
    if x_correlation_id and len(x_correlation_id) <= 128:
        correlation_id = x_correlation_id
    else:
        correlation_id = str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    return correlation_id


def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_store(request: Request) -> VersionStore:
    return request.app.state.store


def get_registration(request: Request) -> RegistrationCoordinator:
    return request.app.state.registration


def get_verification(request: Request) -> VerificationCoordinator:
    return request.app.state.verification


async def read_upload(
    file: UploadFile,
    settings: Settings,
    correlation_id: str,
) -> tuple[bytes, str, FileType]:
    """
    Bounded read of an uploaded document.

    Returns (bytes, sanitized file name, declared file type).
    """
    file_type = resolve_file_type(file.filename, file.content_type)

    max_bytes = settings.max_upload_bytes
    try:
        data = await file.read(max_bytes + 1)
    finally:
        await file.close()

    if not data:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Empty document payload.",
            headers={"X-Correlation-ID": correlation_id},
        )

    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_upload_size_mb}MB limit.",
            headers={"X-Correlation-ID": correlation_id},
        )

    safe_name = (
        file.filename.replace('"', "")
        .replace("\n", "")
        .replace("\r", "")
        .replace("/", "_")
        .replace("\\", "_")
        if file.filename
        else f"document.{file_type.value}"
    )

    return data, safe_name, file_type


# =============================================================================
# POST /contracts/upload
# =============================================================================

@router.post(
    "/contracts/upload",
    summary="Register a document as a new contract version",
    response_model=RegistrationResult,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Target contract not found"},
        409: {"description": "Ledger rejected the write or version race"},
        413: {"description": "Payload too large"},
        415: {"description": "Unsupported media type"},
        422: {"description": "Document text could not be extracted"},
        503: {"description": "Ledger unavailable; version stored unanchored"},
    },
)
async def upload_contract(
    file: Annotated[
        UploadFile,
        File(description="PDF, DOCX or TXT document to register"),
    ],
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
    registration: Annotated[RegistrationCoordinator, Depends(get_registration)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    contract_id: Annotated[
        Optional[str],
        Form(description="Existing contract to append a version to"),
    ] = None,
    x_tenant_id: Annotated[
        Optional[str],
        Header(description="Owning tenant recorded on new contracts"),
    ] = None,
) -> RegistrationResult:
    """
    Canonicalize, hash, persist and anchor an uploaded document.

    Without contract_id a new contract is created. Ledger failures leave
    the version persisted without onChainTxHash and are reported with the
    version in the error body.
    """
    response.headers["X-Correlation-ID"] = correlation_id
    data, file_name, file_type = await read_upload(file, settings, correlation_id)

    logger.info(
        "registration_requested",
        extra={
            "upload_name": file_name,
            "file_type": file_type.value,
            "contract_id": contract_id,
            "trace_id": correlation_id,
        },
    )

    result = await registration.register_document(
        data=data,
        file_name=file_name,
        file_type=file_type,
        contract_id=contract_id or None,
        tenant_id=x_tenant_id,
    )

    logger.info(
        "registration_complete",
        extra={
            "contract_id": result.contract_id,
            "version_label": result.version_label,
            "tx_reference": result.on_chain_tx_hash,
            "trace_id": correlation_id,
        },
    )
    return result


# =============================================================================
# POST /contracts/verify
# =============================================================================

@router.post(
    "/contracts/verify",
    summary="Verify a document against the anchored record",
    response_model=VerificationResult,
    responses={
        413: {"description": "Payload too large"},
        415: {"description": "Unsupported media type"},
        422: {"description": "Document text could not be extracted"},
    },
)
async def verify_contract(
    file: Annotated[
        UploadFile,
        File(description="Document to verify"),
    ],
    response: Response,
    contract_id: Annotated[
        str,
        Form(min_length=1, description="Contract to verify against"),
    ],
    settings: Annotated[Settings, Depends(get_settings)],
    verification: Annotated[VerificationCoordinator, Depends(get_verification)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    version_label: Annotated[
        Optional[str],
        Form(description="Version label (v<N>); defaults to the latest"),
    ] = None,
) -> VerificationResult:
    """
    Mismatches and unknown versions are returned as statuses with HTTP 200.
    """
    response.headers["X-Correlation-ID"] = correlation_id
    data, _, file_type = await read_upload(file, settings, correlation_id)

    return await verification.verify_document(
        data=data,
        file_type=file_type,
        contract_id=contract_id,
        version_label=version_label or None,
    )


# =============================================================================
# Read-only record access
# =============================================================================

@router.get(
    "/contracts",
    summary="List contracts, newest first",
    response_model=List[ContractRecord],
)
async def list_contracts(
    store: Annotated[VersionStore, Depends(get_store)],
    x_tenant_id: Annotated[
        Optional[str],
        Header(description="Restrict the listing to one tenant"),
    ] = None,
) -> List[ContractRecord]:
    return await store.list_contracts(tenant_id=x_tenant_id)


@router.get(
    "/contracts/{contract_id}",
    summary="Get a contract",
    response_model=ContractRecord,
)
async def get_contract(
    contract_id: str,
    store: Annotated[VersionStore, Depends(get_store)],
) -> ContractRecord:
    return await store.get_contract(contract_id)


@router.get(
    "/contracts/{contract_id}/versions",
    summary="List versions of a contract, newest first",
    response_model=List[ContractVersionSummary],
)
async def get_contract_versions(
    contract_id: str,
    store: Annotated[VersionStore, Depends(get_store)],
) -> List[ContractVersionSummary]:
    await store.get_contract(contract_id)
    versions = await store.list_versions(contract_id)
    return [ContractVersionSummary.from_record(v) for v in versions]


@router.get(
    "/versions/{version_id}",
    summary="Get a version",
    response_model=ContractVersionSummary,
)
async def get_version(
    version_id: str,
    store: Annotated[VersionStore, Depends(get_store)],
) -> ContractVersionSummary:
    return ContractVersionSummary.from_record(await store.get_version(version_id))


@router.get(
    "/versions/{version_id}/canonical",
    summary="Get the canonical text of a version",
    response_model=CanonicalTextView,
)
async def get_canonical_text(
    version_id: str,
    store: Annotated[VersionStore, Depends(get_store)],
) -> CanonicalTextView:
    version = await store.get_version(version_id)
    return CanonicalTextView(
        version_id=version.id,
        version_label=version.version_label,
        canonical_content=version.canonical_content,
        contract_hash=version.contract_hash,
        hash_algorithm=version.hash_algorithm,
        normalization_version=version.normalization_version,
        digest_consistent=digest_matches(
            version.canonical_content,
            version.hash_algorithm,
            version.contract_hash,
        ),
    )


# =============================================================================
# POST /versions/{version_id}/anchor
# =============================================================================

@router.post(
    "/versions/{version_id}/anchor",
    summary="Re-attempt anchoring of an unanchored version",
    response_model=RegistrationResult,
    responses={
        404: {"description": "Version not found"},
        409: {"description": "Already anchored or rejected by the ledger"},
        503: {"description": "Ledger unavailable"},
    },
)
async def reanchor_version(
    version_id: str,
    response: Response,
    registration: Annotated[RegistrationCoordinator, Depends(get_registration)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> RegistrationResult:
    response.headers["X-Correlation-ID"] = correlation_id
    logger.info(
        "reanchor_requested",
        extra={"version_id": version_id, "trace_id": correlation_id},
    )
    return await registration.reanchor_version(version_id)
