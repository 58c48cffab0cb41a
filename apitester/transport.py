# apitester/transport.py
"""
HTTP boundary. Wraps an httpx.AsyncClient, applies per-request timeouts and
retries, and turns every network-level failure into TransportError.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from apitester.config import Settings
from apitester.suite_types import StepResponse, TransportError

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = {
    "authorization", "x-api-key", "api_key", "apikey", "token",
    "access_token", "cookie", "x-auth-token", "x-access-token",
    "bearer", "session", "csrf", "jwt", "signature", "x-signature",
}


def redact_sensitive(data: Any) -> Any:
    """Recursively redact sensitive information"""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in _SENSITIVE_KEYS else redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


@dataclass
class ResolvedRequest:
    """A request with every placeholder substituted."""
    method: str
    url: str
    headers: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    json_body: Any = None
    data: Any = None
    timeout: Optional[float] = None

    @classmethod
    def from_template(cls, resolved: Dict[str, Any], timeout: Optional[float] = None) -> "ResolvedRequest":
        return cls(
            method=str(resolved.get("method") or "GET").upper(),
            url=str(resolved.get("url") or ""),
            headers={str(k): str(v) for k, v in (resolved.get("headers") or {}).items()},
            params=dict(resolved.get("params") or {}),
            json_body=resolved.get("json"),
            data=resolved.get("data"),
            timeout=timeout,
        )


class HttpTransport:
    """
    Async HTTP transport.

    Owns its client unless one is injected (tests pass an AsyncClient built
    on httpx.MockTransport).
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or Settings()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpTransport":
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers=self.settings.default_headers,
                timeout=httpx.Timeout(self.settings.timeout_s),
                limits=httpx.Limits(max_connections=max(self.settings.max_concurrency, 1) * 4),
                verify=self.settings.verify_ssl,
                follow_redirects=self.settings.follow_redirects,
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("HttpTransport used outside 'async with'")
        return self._client

    async def send(self, request: ResolvedRequest) -> StepResponse:
        """
        Issue a request with retries on transport errors and 5xx responses.

        Raises:
            TransportError: the request never produced a response
        """
        retries = max(0, int(self.settings.retries))
        backoff = float(self.settings.backoff_base_s)
        timeout = request.timeout if request.timeout is not None else self.settings.timeout_s

        logger.debug(
            f"{request.method} {request.url} headers={redact_sensitive(request.headers)} timeout={timeout}s"
        )

        body: Dict[str, Any] = {}
        if request.json_body is not None:
            body["json"] = request.json_body
        elif isinstance(request.data, (str, bytes)):
            body["content"] = request.data
        elif request.data is not None:
            body["data"] = request.data

        last_exc: Optional[Exception] = None
        resp: Optional[httpx.Response] = None
        elapsed_ms: Optional[int] = None

        for attempt in range(retries + 1):
            try:
                t0 = time.perf_counter()
                resp = await self.client.request(
                    request.method,
                    request.url,
                    headers=request.headers or None,
                    params=request.params or None,
                    timeout=timeout,
                    **body,
                )
                elapsed_ms = int((time.perf_counter() - t0) * 1000)

                # Retry on 5xx
                if resp.status_code >= 500 and attempt < retries:
                    logger.debug(f"Got {resp.status_code}, retrying ({attempt + 1}/{retries})")
                    await asyncio.sleep(backoff * (attempt + 1))
                    continue

                break

            except (httpx.HTTPError, httpx.InvalidURL) as e:
                last_exc = e
                resp = None
                if attempt < retries:
                    await asyncio.sleep(backoff * (attempt + 1))
                    continue
                break

        if resp is None:
            if isinstance(last_exc, httpx.TimeoutException):
                raise TransportError(
                    f"{request.method} {request.url} timed out after {timeout}s",
                    cause=last_exc,
                    timed_out=True,
                )
            raise TransportError(
                f"{request.method} {request.url} failed: {type(last_exc).__name__}: {last_exc}",
                cause=last_exc,
            )

        return StepResponse(
            status_code=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            text=resp.text,
            content=resp.content,
            elapsed_ms=elapsed_ms,
        )
