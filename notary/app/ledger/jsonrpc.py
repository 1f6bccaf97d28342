import itertools
import logging
import re
from typing import Annotated, Any, Optional

import httpx
from pydantic import SecretStr
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from notary.app.core.errors import LedgerRejected, LedgerUnavailable

logger = logging.getLogger("notary.ledger")


class LedgerPending(RuntimeError):
    """
    Internal sentinel exception for not-yet-confirmed ledger writes.

    Raised while the ledger reports a transaction status of ``pending``.
    This exception is explicitly retryable by the confirmation poller.
    """


class JsonRpcLedgerClient:
    """
    Async JSON-RPC 2.0 client for the anchoring ledger.

    HARD GUARANTEES:
    - register() returns only after the ledger reports the write as
      confirmed
    - the write call itself is submitted exactly once; only the
      confirmation poll and read calls are retried
    - a missing record is returned as None, never as a zero digest

    Wire methods:
    - ledger_register(contractId, versionLabel, content,
      normalizationVersion, hashAlgorithm) -> txReference
    - ledger_getTransactionStatus(txReference) -> {status, error?}
    - ledger_getHash(contractId, versionLabel) -> hex digest | null
    """

    REGISTER_METHOD = "ledger_register"
    STATUS_METHOD = "ledger_getTransactionStatus"
    GET_HASH_METHOD = "ledger_getHash"

    # JSON-RPC error codes that indicate ledger-side infrastructure
    # trouble rather than validation of the request.
    _UNAVAILABLE_CODES = frozenset({-32603, -32000, -32005})

    _HEX_DIGEST = re.compile(r"^(?:0x)?([0-9a-fA-F]+)$")

    def __init__(
        self,
        http_client: Annotated[
            httpx.AsyncClient,
            "Persistent HTTP client",
        ],
        rpc_url: str,
        *,
        api_key: Optional[SecretStr] = None,
        request_timeout: float = 30.0,
        confirmation_timeout: float = 120.0,
        read_attempts: int = 3,
        poll_wait_min: float = 0.5,
        poll_wait_max: float = 10.0,
    ):
        self.client = http_client
        self.rpc_url = str(rpc_url)
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.confirmation_timeout = confirmation_timeout
        self.read_attempts = read_attempts
        self.poll_wait_min = poll_wait_min
        self.poll_wait_max = poll_wait_max
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def register(
        self,
        *,
        contract_id: str,
        version_label: str,
        content: str,
        normalization_version: str,
        hash_algorithm: str,
    ) -> str:
        """
        Submit a registration and wait for confirmation.

        NOTE:
        - A timeout while waiting for confirmation raises
          LedgerUnavailable; the write may still land afterwards.
        """
        try:
            result = await self._call(
                self.REGISTER_METHOD,
                {
                    "contractId": contract_id,
                    "versionLabel": version_label,
                    "content": content,
                    "normalizationVersion": normalization_version,
                    "hashAlgorithm": hash_algorithm,
                },
            )
        except httpx.TransportError as exc:
            raise LedgerUnavailable(
                f"Ledger unreachable during registration: {exc}"
            ) from exc

        tx_reference = self._tx_reference(result)

        logger.info(
            "ledger_register_submitted",
            extra={
                "contract_id": contract_id,
                "version_label": version_label,
                "tx_reference": tx_reference,
            },
        )

        await self._wait_for_confirmation(tx_reference)

        logger.info(
            "ledger_register_confirmed",
            extra={
                "contract_id": contract_id,
                "version_label": version_label,
                "tx_reference": tx_reference,
            },
        )
        return tx_reference

    async def fetch(
        self,
        *,
        contract_id: str,
        version_label: str,
    ) -> Optional[str]:
        """Read the anchored digest, or None if the key was never anchored."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.read_attempts),
                wait=wait_exponential(min=self.poll_wait_min, max=self.poll_wait_max),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    result = await self._call(
                        self.GET_HASH_METHOD,
                        {
                            "contractId": contract_id,
                            "versionLabel": version_label,
                        },
                    )
        except httpx.TransportError as exc:
            raise LedgerUnavailable(
                f"Ledger unreachable during read: {exc}"
            ) from exc

        if result is None:
            return None

        match = self._HEX_DIGEST.match(result) if isinstance(result, str) else None
        if match is None:
            raise LedgerUnavailable(
                f"Ledger returned a malformed digest: {result!r}"
            )
        # Local digests are bare lowercase hex.
        return match.group(1).lower()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key is not None:
            headers["Authorization"] = (
                f"Bearer {self.api_key.get_secret_value()}"
            )
        return headers

    async def _call(self, method: str, params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        response = await self.client.post(
            self.rpc_url,
            headers=self._headers(),
            json=payload,
            timeout=self.request_timeout,
        )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "ledger_http_error",
                extra={
                    "rpc_method": method,
                    "status_code": response.status_code,
                },
            )
            raise LedgerUnavailable(
                f"Ledger HTTP {response.status_code} on {method}"
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise LedgerUnavailable(
                f"Ledger returned non-JSON response on {method}"
            ) from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            self._raise_rpc_error(method, error)

        if not isinstance(body, dict) or "result" not in body:
            raise LedgerUnavailable(
                f"Ledger response missing result on {method}"
            )
        return body["result"]

    def _raise_rpc_error(self, method: str, error: Any) -> None:
        code = error.get("code") if isinstance(error, dict) else None
        message = (
            error.get("message", "") if isinstance(error, dict) else str(error)
        )

        logger.warning(
            "ledger_rpc_error",
            extra={
                "rpc_method": method,
                "rpc_code": code,
                "rpc_message": message,
            },
        )

        if code in self._UNAVAILABLE_CODES:
            raise LedgerUnavailable(f"Ledger error on {method}: {message}")
        raise LedgerRejected(f"Ledger rejected {method}: {message}")

    @staticmethod
    def _tx_reference(result: Any) -> str:
        if isinstance(result, dict):
            result = result.get("txReference")
        if not isinstance(result, str) or not result:
            raise LedgerUnavailable(
                "Ledger registration response missing transaction reference"
            )
        return result

    async def _wait_for_confirmation(self, tx_reference: str) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.confirmation_timeout),
                wait=wait_exponential(min=self.poll_wait_min, max=self.poll_wait_max),
                retry=retry_if_exception_type(
                    (httpx.TransportError, LedgerPending)
                ),
                reraise=True,
            ):
                with attempt:
                    await self._poll_status(tx_reference)
        except (LedgerPending, httpx.TransportError) as exc:
            logger.error(
                "ledger_confirmation_timeout",
                extra={
                    "tx_reference": tx_reference,
                    "timeout_seconds": self.confirmation_timeout,
                },
            )
            raise LedgerUnavailable(
                f"Ledger write {tx_reference} not confirmed within "
                f"{self.confirmation_timeout}s; it may still land"
            ) from exc

    async def _poll_status(self, tx_reference: str) -> None:
        result = await self._call(self.STATUS_METHOD, [tx_reference])

        status = str(
            result.get("status", "") if isinstance(result, dict) else result
        ).lower()

        if status == "confirmed":
            return

        if status == "failed":
            reason = (
                result.get("error") if isinstance(result, dict) else None
            )
            raise LedgerRejected(
                f"Ledger write {tx_reference} failed: {reason}"
            )

        # Any other status is still in flight; poll again.
        raise LedgerPending(f"ledger_pending:{status}")
