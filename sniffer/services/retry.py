"""
retry.py

Politique de retry/backoff appliquée autour d'un appel de transport "nu".

La politique est un objet à part (nombre max de tentatives, fonction de backoff,
prédicat "erreur rejouable") : on peut la tester sans réseau, et chaque client
HTTP l'enveloppe autour de son appel unitaire via tenacity.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from sniffer.errors import UpstreamError, UpstreamErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0  # secondes
    timeout_base_delay: float = 2.0
    max_delay: float = 5.0

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, UpstreamError) and error.retryable

    def delay_for(self, error: BaseException, attempt: int) -> float:
        """Attente avant la tentative suivante, `attempt` étant la tentative qui vient d'échouer (1..n)."""

        kind = error.kind if isinstance(error, UpstreamError) else None

        if kind is UpstreamErrorKind.RATE_LIMITED:
            delay = self.base_delay * attempt
        elif kind is UpstreamErrorKind.TIMEOUT:
            delay = self.timeout_base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * (2 ** (attempt - 1))

        return min(delay, self.max_delay)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.delay_for(error, retry_state.attempt_number)

    def retrying(self, sleep: Sleep = asyncio.sleep) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self.is_retryable),
            sleep=sleep,
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        sleep: Sleep = asyncio.sleep,
        **kwargs: Any,
    ) -> T:
        return await self.retrying(sleep=sleep)(func, *args, **kwargs)


DEFAULT_RETRY_POLICY = RetryPolicy()
