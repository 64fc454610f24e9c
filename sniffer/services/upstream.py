"""
upstream.py

Client HTTP générique vers une API tierce (Etherscan, DexScreener, social...).

- espacement minimum entre deux appels au même upstream (file d'attente de 1) ;
- timeout par appel ;
- classification des erreurs en UpstreamError ;
- retry/backoff via une RetryPolicy enveloppée autour de l'appel unitaire.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from sniffer.errors import UpstreamError, UpstreamErrorKind
from sniffer.services.retry import DEFAULT_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "SnifferWeb3/1.0",
    "Accept": "application/json",
    "Cache-Control": "no-cache",
}


class UpstreamClient:
    """Enveloppe fine autour d'un httpx.AsyncClient, une instance par upstream."""

    name = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        min_interval_ms: int = 250,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={**DEFAULT_HEADERS, **(headers or {})},
            transport=transport,
        )
        self.min_interval = min_interval_ms / 1000
        self.retry_policy = retry_policy
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._spacing_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ---------- ESPACEMENT ----------

    async def _wait_for_slot(self) -> None:
        """Bloque jusqu'à ce que l'intervalle minimum depuis le dernier appel soit écoulé."""

        async with self._spacing_lock:
            if self._last_call is not None and self.min_interval > 0:
                elapsed = self._clock() - self._last_call
                if elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug("%s : espacement, attente %.0f ms", self.name, wait * 1000)
                    await self._sleep(wait)
            self._last_call = self._clock()

    # ---------- APPEL UNITAIRE ----------

    async def _fetch_once(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        await self._wait_for_slot()

        try:
            resp = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(UpstreamErrorKind.TIMEOUT, str(e) or "timeout", self.name) from e
        except httpx.TransportError as e:
            raise UpstreamError(UpstreamErrorKind.NETWORK_ERROR, str(e), self.name) from e
        except httpx.DecodingError as e:
            # corps compressé illisible (gzip, brotli...)
            raise UpstreamError(UpstreamErrorKind.INVALID_SHAPE, str(e), self.name) from e
        except httpx.RequestError as e:
            raise UpstreamError(UpstreamErrorKind.NETWORK_ERROR, str(e), self.name) from e

        if resp.status_code == 429:
            raise UpstreamError(
                UpstreamErrorKind.RATE_LIMITED, "HTTP 429", self.name, status_code=429
            )
        if resp.status_code >= 400:
            raise UpstreamError(
                UpstreamErrorKind.HTTP_ERROR,
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                self.name,
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamError(
                UpstreamErrorKind.INVALID_SHAPE, "réponse non JSON", self.name
            ) from e

        return self._unwrap(payload)

    def _unwrap(self, payload: Any) -> Any:
        """Extrait les données utiles d'une enveloppe propre à l'upstream.

        Par défaut la réponse JSON est renvoyée telle quelle ; les sous-classes
        y traduisent leurs codes d'erreur applicatifs et leurs réponses "vides".
        """

        return payload

    # ---------- APPEL AVEC RETRY ----------

    async def fetch(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.retry_policy.call(self._fetch_once, path, params, sleep=self._sleep)
