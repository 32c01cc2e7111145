import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

import httpx

import autosend.constants as C
from autosend.errors import FatalError, OperationFailedError, RetryExhaustedError

log = logging.getLogger("autosend.retry")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """Bounded retry with a constant delay.

    Only transient failures (rate limiting, capacity signals) are retried.
    Anything else gives up after the first attempt. Either way the caller gets a
    RecoverableError; a FatalError raised by the operation passes straight through.
    """

    def __init__(
        self,
        max_attempts: int,
        delay: float,
        *,
        transient_signatures: Iterable[str] = C.TRANSIENT_SIGNATURES,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.delay = delay
        self.transient_signatures = tuple(s.lower() for s in transient_signatures)
        self._sleep = sleep

    def is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
            return True
        msg = str(exc).lower()
        return any(sig in msg for sig in self.transient_signatures)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "operation",
        max_attempts: int | None = None,
    ) -> T:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except FatalError:
                raise
            except Exception as e:
                last_error = e
                log.warning("%s: error on attempt %d/%d: %s", label, attempt, attempts, e)
                if not self.is_transient(e):
                    raise OperationFailedError(label, attempt, e) from e
                if attempt < attempts:
                    log.info("%s: retrying in %ss", label, self.delay)
                    await self._sleep(self.delay)

        raise RetryExhaustedError(label, attempts, last_error) from last_error
