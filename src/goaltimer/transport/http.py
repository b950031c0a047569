"""
REST HTTP client for the Session Service.

Every endpoint answers { "success": bool, "data": ..., "error"?: str }.
No retries: a failed call surfaces as NetworkError and the caller reloads.
"""

import logging
from typing import Any, Optional

import httpx

from goaltimer.config import DEFAULT_BASE_URL
from goaltimer.errors import NetworkError

logger = logging.getLogger(__name__)


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "goaltimer/0.1.0", "Accept": "application/json"},
            timeout=30.0,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _unwrap(resp: httpx.Response) -> Any:
        """Return `data` from the standard envelope, raising on any failure shape."""
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error") or resp.text[:200]
            except (ValueError, AttributeError):
                message = resp.text[:200]
            raise NetworkError(f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError:
            raise NetworkError(f"Invalid JSON from {resp.request.url}")
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise NetworkError(body.get("error") or "Request failed")
            return body.get("data")
        return body

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, headers=self._auth_headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise NetworkError(f"{method} {path} failed: {e}") from e
        return self._unwrap(resp)

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("POST", path, json=body)

    async def close(self) -> None:
        await self._client.aclose()
