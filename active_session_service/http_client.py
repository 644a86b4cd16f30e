"""
Async HTTP wrapper used for persistence API calls.

Transport failures and unexpected statuses never raise here: they come back as
an unsuccessful ``ServiceResponse`` and are logged with the call's context.

    async with ServiceClient(base_url=url, headers={"X-User-Id": uid}) as client:
        resp = await client.get("/sessions/1", expected_status=(200, 404))
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from asgi_correlation_id.context import correlation_id

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Request-ID"


@dataclass
class ServiceResponse:
    success: bool
    data: Any = None
    status_code: int | None = None
    error: str | None = None


class ServiceClient:
    """
    One ``httpx.AsyncClient`` per ``async with`` block.

    The current request's correlation id is forwarded so persistence API logs
    line up with ours. ``transport`` lets tests serve requests in-process.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        headers: dict[str, str] | None = None,
        timeout: float | httpx.Timeout = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ServiceClient:
        headers = dict(self._headers)
        cid = correlation_id.get(None)
        if cid:
            headers.setdefault(CORRELATION_HEADER, cid)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _decode(response: httpx.Response) -> tuple[bool, Any]:
        # 204 and empty bodies are valid replies to PUT/PATCH/finish.
        if response.status_code == 204 or not response.content:
            return True, None
        try:
            return True, response.json()
        except ValueError:
            return False, None

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        expected_status: int | tuple[int, ...] = 200,
        **log_context: Any,
    ) -> ServiceResponse:
        if self._client is None:
            raise RuntimeError("ServiceClient used outside of 'async with'")
        if isinstance(expected_status, int):
            expected_status = (expected_status,)

        started = time.perf_counter()
        try:
            response = await self._client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error(
                "persistence_request_failed",
                method=method,
                url=url,
                error_type=type(exc).__name__,
                error=str(exc),
                **log_context,
            )
            return ServiceResponse(success=False, error=str(exc) or type(exc).__name__)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        if response.status_code not in expected_status:
            logger.error(
                "persistence_unexpected_status",
                method=method,
                url=url,
                status_code=response.status_code,
                expected=expected_status,
                elapsed_ms=elapsed_ms,
                body_preview=response.text[:500] if response.text else "",
                **log_context,
            )
            return ServiceResponse(
                success=False,
                status_code=response.status_code,
                error=f"Unexpected status {response.status_code}",
            )

        decoded, data = self._decode(response)
        if not decoded:
            logger.error(
                "persistence_json_parse_failed",
                method=method,
                url=url,
                status_code=response.status_code,
                body_preview=response.text[:500],
                **log_context,
            )
            return ServiceResponse(success=False, status_code=response.status_code, error="JSON parse failed")

        logger.debug(
            "persistence_request_completed",
            method=method,
            url=url,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return ServiceResponse(success=True, data=data, status_code=response.status_code)

    async def get(self, url: str, **kwargs: Any) -> ServiceResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> ServiceResponse:
        kwargs.setdefault("expected_status", (200, 201))
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> ServiceResponse:
        kwargs.setdefault("expected_status", (200, 201, 204))
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> ServiceResponse:
        kwargs.setdefault("expected_status", (200, 204))
        return await self.request("PATCH", url, **kwargs)
