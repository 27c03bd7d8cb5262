"""HTTP client for the external search engine.

Wire format:
- ``POST /search`` with ``{table, query, mode}`` returns ``{results: [{id, ...}], time_ms, count}``
- ``GET /search?q=...`` returns the same shape for ad-hoc queries
- ``GET /ping`` returns ``{status: "ok", server_info: {...}}``
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import orjson

from lightning_search.domain.search import EngineQueryResult


logger = logging.getLogger(__name__)

FULLTEXT = "fulltext"


class EngineRequestError(RuntimeError):
    """Raised for any engine failure: transport fault, non-2xx status or undecodable body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class EngineClient:
    """Thin async wrapper over ``httpx.AsyncClient`` speaking the engine protocol."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> EngineClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def query(self, table: str, query_text: str, kind: str = FULLTEXT) -> EngineQueryResult:
        """Run a table-scoped query; ``kind`` is always ``fulltext`` for dispatcher calls."""
        payload = await self._request("POST", "/search", json={"table": table, "query": query_text, "mode": kind})
        return self._parse_result(payload)

    async def keyed_query(self, query_text: str) -> EngineQueryResult:
        """Run the ``GET /search?q=`` variant used for direct ad-hoc querying."""
        payload = await self._request("GET", "/search", params={"q": query_text})
        return self._parse_result(payload)

    async def ping(self) -> dict[str, Any]:
        return await self._request("GET", "/ping")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise EngineRequestError(f"engine request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise EngineRequestError(f"engine request failed: {exc}") from exc

        if not response.is_success:
            body = response.text.strip()
            raise EngineRequestError(
                f"engine returned HTTP {response.status_code}: {body[:500]}",
                status_code=response.status_code,
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise EngineRequestError(f"engine returned invalid JSON: {exc}", status_code=response.status_code) from exc
        if not isinstance(payload, dict):
            raise EngineRequestError("engine returned a non-object body", status_code=response.status_code)
        return payload

    @staticmethod
    def _parse_result(payload: dict[str, Any]) -> EngineQueryResult:
        try:
            return EngineQueryResult.from_payload(payload)
        except (TypeError, ValueError) as exc:
            raise EngineRequestError(f"engine returned an unexpected result shape: {exc}") from exc
