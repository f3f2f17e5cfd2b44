"""HTTP client for the Compass backend API."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from compass_portal.core.auth import Session
from compass_portal.core.config import Settings
from compass_portal.core.errors import ApiError, NetworkError, parse_error_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Blob:
    """Binary response body plus the headers that describe it."""

    content: bytes
    headers: httpx.Headers

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def content_disposition(self) -> str | None:
        return self.headers.get("content-disposition")


def _clean_params(params: dict | None) -> dict | None:
    if not params:
        return None
    return {key: value for key, value in params.items() if value is not None and value != ""}


def _read_payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:
    """Authenticated wrapper around ``httpx.AsyncClient``.

    Non-2xx responses raise :class:`ApiError` with the decoded error body.
    Transport failures raise :class:`NetworkError`. There are no retries.

    Args:
        settings: Portal settings (base URL, timeout, TLS)
        session: Current session; its bearer token is attached to every call
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        settings: Settings,
        session: Session,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.session = session
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(session.auth_headers())
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=settings.api_timeout_seconds,
            verify=settings.api_verify_tls,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        json: Any = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method=method,
                url=endpoint,
                params=_clean_params(params),
                json=json,
                headers=headers,
            )
        except httpx.TransportError as e:
            logger.error(f"{method} {endpoint} failed without a response: {e}")
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.is_error:
            payload = _read_payload(response)
            detail = parse_error_payload(payload)
            logger.warning(f"{method} {endpoint} returned {response.status_code}: {detail}")
            raise ApiError(response.status_code, payload, detail)

        logger.debug(f"{method} {endpoint} -> {response.status_code}")
        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the parsed JSON body (None when empty)."""
        response = await self._send(method, endpoint, params=params, json=json)
        if response.status_code == 204:
            return None
        return _read_payload(response)

    async def get(self, endpoint: str, params: dict | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("POST", endpoint, json=json)

    async def put(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("PUT", endpoint, json=json)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)

    async def get_blob(self, endpoint: str, params: dict | None = None) -> Blob:
        """Download a file; the caller reads the filename from the headers."""
        response = await self._send("GET", endpoint, params=params, headers={"Accept": "*/*"})
        return Blob(content=response.content, headers=response.headers)
