from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

import anyio
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from campus_drive.core.config import settings
from campus_drive.core.errors import ConcurrentModification, StorageUnavailable

logger = logging.getLogger("cd.storage")

T = TypeVar("T")

BASE_RETRY_SECONDS = 0.2
MAX_RETRY_SECONDS = 5.0

_RETRYABLE = (OperationalError, InterfaceError, StaleDataError, ConcurrentModification)


def retry_delay_seconds(attempt_number: int) -> float:
    # attempt_number starts at 1 (first failed execution).
    attempt = max(int(attempt_number), 1)
    delay = BASE_RETRY_SECONDS * (2 ** (attempt - 1))
    return min(delay, MAX_RETRY_SECONDS)


def _as_domain_error(exc: BaseException) -> Exception:
    if isinstance(exc, ConcurrentModification):
        return exc
    if isinstance(exc, StaleDataError):
        return ConcurrentModification("Record was changed by another request; reload and retry.")
    return StorageUnavailable("Storage is temporarily unavailable.")


class TransactionRunner:
    """
    Runs one unit of work per transaction and commits it.

    Lock timeouts, dropped connections and optimistic-version conflicts roll back and rerun
    the whole unit with exponential backoff; business errors propagate on the first raise.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._max_attempts = max(int(max_attempts or settings.storage_retry_attempts), 1)
        self._sleep = sleep

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            async with self._session_factory() as session:
                try:
                    result = await work(session)
                    await session.commit()
                    return result
                except _RETRYABLE as exc:
                    await session.rollback()
                    if attempt >= self._max_attempts:
                        logger.error(
                            "storage_retry_exhausted",
                            extra={"attempts": attempt, "error": type(exc).__name__},
                        )
                        raise _as_domain_error(exc) from exc
                    delay = retry_delay_seconds(attempt)
                    logger.warning(
                        "storage_retry",
                        extra={"attempt": attempt, "delay_seconds": delay, "error": type(exc).__name__},
                    )
                except Exception:
                    await session.rollback()
                    raise
            await self._sleep(delay)
