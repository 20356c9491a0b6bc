"""
Ordered try-then-fallback execution over provider attempts.

Attempts run strictly one after another, each bounded by a timeout. A
timeout, an exception or an error result all count as a failure and move the
cascade on to the next attempt; the first success wins.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

AttemptFn = Callable[[], Awaitable[Tuple[Optional[T], Optional[str]]]]


@dataclass
class Attempt(Generic[T]):
    name: str
    run: AttemptFn


@dataclass
class CascadeOutcome(Generic[T]):
    value: Optional[T] = None
    errors: List[str] = field(default_factory=list)


async def run_attempt(attempt: Attempt[T], timeout: float) -> Tuple[Optional[T], Optional[str]]:
    """Run one attempt; never raises."""
    try:
        value, error = await asyncio.wait_for(attempt.run(), timeout=timeout)
    except asyncio.TimeoutError:
        return None, f"timed out after {timeout:.0f}s"
    except Exception as e:
        return None, f"Unexpected exception in provider: {e.__class__.__name__}: {e}"

    if value is None and not error:
        error = "no result"
    return value, error


async def first_success(attempts: Iterable[Attempt[T]], timeout: float, label: str = "cascade") -> CascadeOutcome[T]:
    """Try ``attempts`` in order and stop at the first one that yields a value."""
    attempts = list(attempts)
    total = len(attempts)
    outcome: CascadeOutcome[T] = CascadeOutcome()

    for idx, attempt in enumerate(attempts, 1):
        logger.info(f"🎯 {label} {idx}/{total}: {attempt.name}")
        value, error = await run_attempt(attempt, timeout)

        if value is not None:
            logger.info(f"✅ {label} {idx}/{total} ({attempt.name}) succeeded")
            outcome.value = value
            return outcome

        logger.warning(f"⚠️ {label} {idx}/{total} ({attempt.name}) failed: {error[:120]}")
        outcome.errors.append(f"[{attempt.name}]: {error[:200]}")

    logger.error(f"❌ All {total} {label} attempts failed: {'; '.join(outcome.errors)}")
    return outcome
