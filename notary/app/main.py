import logging
import sys
import uuid
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from notary.app.api.routes import router as integrity_router
from notary.app.canonicalization.engine import CanonicalizationEngine
from notary.app.coordinator.registration import RegistrationCoordinator
from notary.app.coordinator.verification import VerificationCoordinator
from notary.app.core.config import Settings, get_settings
from notary.app.core.errors import NotaryError
from notary.app.ledger.base import LedgerAnchor
from notary.app.ledger.jsonrpc import JsonRpcLedgerClient
from notary.app.ledger.memory import InMemoryLedger
from notary.app.store.database import create_engine, create_session_factory, init_schema
from notary.app.store.version_store import VersionStore

logger = logging.getLogger("notary.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source-tree version when not installed.
    """
    try:
        return version("contract-notary")
    except PackageNotFoundError:
        return "0.1.0"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )


def build_ledger(
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> LedgerAnchor:
    if settings.ledger_backend == "memory":
        logger.warning(
            "memory_ledger_selected",
            extra={"detail": "anchors are process-local and not tamper-evident"},
        )
        return InMemoryLedger()

    return JsonRpcLedgerClient(
        http_client,
        str(settings.ledger_rpc_url),
        api_key=settings.ledger_api_key,
        request_timeout=settings.ledger_request_timeout_seconds,
        confirmation_timeout=settings.ledger_confirmation_timeout_seconds,
        read_attempts=settings.ledger_read_attempts,
    )


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[LedgerAnchor] = None,
) -> FastAPI:
    """
    Application factory for the Notary service.

    settings and ledger may be injected (tests, embedding); otherwise
    they are built from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Guarantees:
        - Fail-fast startup if configuration is invalid
        - Schema present before the first request
        - Pre-allocated shared transports
        """
        # ------------------------------------------------------------------
        # Load and validate configuration (FAIL FAST)
        # ------------------------------------------------------------------
        try:
            app_settings = settings if settings is not None else get_settings()
        except Exception:
            logger.exception("invalid_notary_configuration")
            raise

        configure_logging(app_settings)

        logger.info(
            "notary_startup_begin",
            extra={
                "service": "notary",
                "version": get_app_version(),
                "ledger_backend": app_settings.ledger_backend,
                "hash_algorithm": app_settings.hash_algorithm,
            },
        )

        app.state.settings = app_settings

        # ------------------------------------------------------------------
        # Version store
        # ------------------------------------------------------------------
        engine = create_engine(app_settings.database_url)
        await init_schema(engine)
        store = VersionStore(create_session_factory(engine))

        # ------------------------------------------------------------------
        # Persistent HTTP client for the ledger
        # ------------------------------------------------------------------
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout=app_settings.ledger_request_timeout_seconds,
                connect=10.0,
            ),
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=50,
            ),
            headers={
                "User-Agent": f"contract-notary/{get_app_version()}",
            },
        )

        app_ledger = ledger if ledger is not None else build_ledger(
            app_settings, http_client
        )

        canonicalizer = CanonicalizationEngine(
            normalization_version=app_settings.normalization_version,
        )

        app.state.store = store
        app.state.ledger = app_ledger
        app.state.canonicalizer = canonicalizer
        app.state.registration = RegistrationCoordinator(
            engine=canonicalizer,
            store=store,
            ledger=app_ledger,
            hash_algorithm=app_settings.hash_algorithm,
        )
        app.state.verification = VerificationCoordinator(
            engine=canonicalizer,
            store=store,
            ledger=app_ledger,
            hash_algorithm=app_settings.hash_algorithm,
        )

        try:
            yield
        finally:
            logger.info("notary_shutdown_begin")

            try:
                await http_client.aclose()
            except Exception:
                logger.warning("http_client_shutdown_failed")

            await engine.dispose()

    app = FastAPI(
        title="Contract Notary",
        description=(
            "Document integrity service: canonicalization, hashing, "
            "ledger anchoring and verification of contract versions."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    @app.exception_handler(NotaryError)
    async def notary_error_handler(request: Request, exc: NotaryError) -> ORJSONResponse:
        correlation_id = getattr(request.state, "correlation_id", None)
        if correlation_id is None:
            correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        payload = exc.to_payload()
        payload["correlationId"] = correlation_id

        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "request_failed",
            extra={
                "error_type": type(exc).__name__,
                "status_code": exc.status_code,
                "trace_id": correlation_id,
            },
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content=payload,
            headers={"X-Correlation-ID": correlation_id},
        )

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check():
        """
        Verifies that the runtime is alive and correctly initialized.

        NOTE:
        - Does NOT call the ledger
        """
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "notary",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
                "ledger_backend": app.state.settings.ledger_backend,
            }
        )

    app.include_router(integrity_router)
    return app


app = create_app()
