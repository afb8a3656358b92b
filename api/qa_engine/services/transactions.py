from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.config import settings
from qa_engine.errors import ConcurrencyError, QAEngineError
from qa_engine.metrics import mutation_retries

log = structlog.get_logger(__name__)

T = TypeVar("T")


async def commit_with_retry(
    db: AsyncSession,
    operation: str,
    mutation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
) -> T:
    """Run mutation() and commit, retrying on row conflicts.

    Each attempt re-runs the whole mutation from a clean transaction, so a
    unique-constraint race (two first reactions from the same user) or a lock
    failure is resolved against the winner's committed state. Domain errors
    roll back and propagate immediately.

    Args:
        db: The request session.
        operation: Short name used in logs and the retry metric.
        mutation: Coroutine factory performing the reads and writes.
        attempts: Retry budget; defaults to settings.mutation_retry_attempts.

    Returns:
        Whatever mutation() returned on the successful attempt.

    Raises:
        ConcurrencyError: The conflict persisted on every attempt.
    """
    attempts = attempts or settings.mutation_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = await mutation()
            await db.commit()
            return result
        except QAEngineError:
            await db.rollback()
            raise
        except (IntegrityError, OperationalError) as exc:
            await db.rollback()
            mutation_retries.labels(operation=operation).inc()
            log.warning(
                "mutation_retry",
                operation=operation,
                attempt=attempt,
                max_attempts=attempts,
                error=str(exc.orig),
            )

    raise ConcurrencyError(f"{operation} conflicted with a concurrent update, please retry")
