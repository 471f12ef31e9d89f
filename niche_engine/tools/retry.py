"""
Retry with exponential backoff for external calls (embeddings, annotation).

Backoff: base_delay × multiplier^(attempt-1), capped at max_delay.
Defaults (3 attempts, 1s → 2s) come from settings.

Usage:
    policy = RetryPolicy.from_settings()
    vector = await policy.run(provider.embed, "wireless mouse", label="wireless mouse")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    # Injectable so tests run without real waits
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "RetryPolicy":
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        kwargs = dict(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        delay = self.base_delay * (self.multiplier ** max(0, attempt - 1))
        return max(0.0, min(self.max_delay, delay))

    async def run(self, fn: Callable[..., Awaitable[Any]], *args, label: Optional[str] = None, **kwargs) -> Any:
        """Await fn(*args, **kwargs) until it succeeds or attempts run out.

        Re-raises the last error. Exceptions outside `retry_on` propagate
        immediately.
        """
        name = label or getattr(fn, "__name__", "call")
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except self.retry_on as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.debug(
                    f"Attempt {attempt}/{self.max_attempts} failed for '{name}': "
                    f"{type(e).__name__}: {e}; retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
        logger.warning(f"All {self.max_attempts} attempts failed for '{name}': {last_error}")
        raise last_error
