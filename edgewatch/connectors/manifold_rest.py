"""
Manifold REST Client
====================

Request/response calls used outside the streaming core: validating the
caller's API key at startup (``/me``).

Retry policy: only HTTP 502/503/504 are retried, with delays of
1, 2, 4, 8 and 16 seconds (initial request plus up to five retries).
4xx responses are never retried.

Usage::

    client = ManifoldRestClient(api_key="...")
    account = await client.get_me()
    await client.close()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from ..core.errors import ManifoldAPIError

logger = logging.getLogger("edgewatch.connectors.manifold_rest")

_BASE_URL = "https://api.manifold.markets/v0"
_REQUEST_TIMEOUT = 15.0
_RETRY_STATUSES = frozenset({502, 503, 504})
_DEFAULT_MAX_RETRIES = 5
_DEFAULT_RETRY_BASE_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class Account:
    """Identity returned by ``GET /me``."""
    id: str
    username: str
    name: str
    balance: float


class ManifoldRestClient:
    """Async REST client for the Manifold v0 API.

    Args:
        api_key: Manifold API key, sent as ``Authorization: Key <api_key>``.
        base_url: Override API endpoint (for testing).
        max_retries: Retries after the first attempt for 502/503/504.
        retry_base_seconds: First retry delay; doubles per retry.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = _BASE_URL,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = _DEFAULT_RETRY_BASE_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_base = retry_base_seconds
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None
        self._calls_made: int = 0

    @property
    def calls_made(self) -> int:
        """Total HTTP requests made (including retries)."""
        return self._calls_made

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT),
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    # ── HTTP helper ─────────────────────────────────────────────────────

    async def _get_json(self, path: str, *, auth: bool = False) -> Dict[str, Any]:
        """GET ``path`` and return parsed JSON.

        Raises:
            ManifoldAPIError: On 4xx, non-retryable 5xx, or after the
                retry budget for 502/503/504 is spent.
        """
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Key {self._api_key}"} if auth else {}

        for attempt in range(self._max_retries + 1):
            session = await self._get_session()
            async with session.get(url, headers=headers) as resp:
                self._calls_made += 1
                if resp.status == 200:
                    return await resp.json(content_type=None)
                text = await resp.text()

            if resp.status in _RETRY_STATUSES and attempt < self._max_retries:
                backoff = self._retry_base * (2 ** attempt)
                logger.warning(
                    "Manifold HTTP %d on %s (attempt %d/%d), backing off %.0fs",
                    resp.status,
                    path,
                    attempt + 1,
                    self._max_retries + 1,
                    backoff,
                )
                await self._sleep(backoff)
                continue
            raise ManifoldAPIError(resp.status, text[:200])

        # Loop always returns or raises
        raise ManifoldAPIError(0, "retry loop exhausted")  # pragma: no cover

    # ── Endpoints ───────────────────────────────────────────────────────

    async def get_me(self) -> Account:
        """Validate the API key and return the account it belongs to."""
        body = await self._get_json("/me", auth=True)
        return Account(
            id=str(body.get("id", "")),
            username=str(body.get("username", "")),
            name=str(body.get("name", "")),
            balance=float(body.get("balance") or 0.0),
        )
