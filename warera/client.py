"""
RemoteClient - tRPC-style GET client for the WarEra API.

Usage:
    client = RemoteClient(credentials=ApiKeyStore())
    user = await client.call('user.getUserLite', {'userId': user_id})
    await client.aclose()

Requests have the shape ``GET {endpoint}/{procedure}?input=<json>``; responses
are unwrapped from the ``{"result": {"data": ...}}`` envelope.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx

from warera.config import config
from warera.errors import RemoteError

if TYPE_CHECKING:
    from warera.credentials import ApiKeyStore

logger = logging.getLogger(__name__)


def clean_params(params: dict) -> dict:
    """Drop None-valued entries; the API rejects explicit nulls."""
    return {key: value for key, value in params.items() if value is not None}


def unwrap_envelope(body: Any) -> Any:
    """Return ``body.result.data`` when present, else the body unchanged."""
    if isinstance(body, dict):
        result = body.get("result")
        if isinstance(result, dict) and "data" in result:
            return result["data"]
    return body


def _error_message(response: httpx.Response) -> str:
    """Server-supplied error message, or a generic one if the body is unusable."""
    message = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return message


class RemoteClient:
    """Async client for the WarEra tRPC endpoint."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        credentials: Optional["ApiKeyStore"] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Base URL (e.g., "https://api2.warera.io/trpc")
            credentials: Key store consulted on every call (optional)
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.endpoint = (endpoint or config.api_endpoint).rstrip("/")
        self.timeout = timeout or config.request_timeout
        self._credentials = credentials
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _resolve_key(self) -> Optional[str]:
        if self._credentials is None:
            return None
        return await self._credentials.get()

    async def call(
        self,
        procedure: str,
        params: Optional[dict] = None,
        api_key: Optional[str] = None,
    ) -> Any:
        """
        Call a remote procedure.

        Args:
            procedure: Procedure name (e.g., "transaction.getPaginatedTransactions")
            params: Input object; None-valued entries are dropped
            api_key: Key to use instead of the one from the key store

        Returns:
            The unwrapped ``result.data`` payload

        Raises:
            RemoteError: On non-2xx responses, undecodable bodies or transport failures
        """
        cleaned = clean_params(params or {})
        headers = {"Content-Type": "application/json"}
        key = api_key if api_key is not None else await self._resolve_key()
        if key:
            headers["X-API-Key"] = key

        url = f"{self.endpoint}/{procedure}"
        logger.debug(f"GET {url}")
        try:
            response = await self._client.get(
                url,
                params={"input": json.dumps(cleaned, separators=(",", ":"))},
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"{procedure}: request failed: {e}")
            raise RemoteError(f"Request to {procedure} failed: {e}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"{procedure}: {message}")
            raise RemoteError(message, status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON in {procedure} response", status=response.status_code) from e

        return unwrap_envelope(body)
