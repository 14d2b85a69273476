"""Crawl delay strategies.

Each strategy answers one question between candidates: how many milliseconds
to wait before the next request. Use :func:`create_delay_strategy` to build the
one selected in the configuration; capability problems surface there, once,
before the crawl starts.
"""

import logging
import random
from typing import Any, Optional, Protocol

from .config import DelayConfig, DelayStrategyType
from .errors import ConfigError, RenderError, UnsupportedCapabilityError
from .net.renderer import ScriptingRenderer

logger = logging.getLogger(__name__)

# Navigation Timing API (Level 1)
TIMING_SUPPORT_SCRIPT = "() => ('performance' in window) && ('timing' in window.performance)"
LOAD_TIME_SCRIPT = "() => performance.timing.loadEventEnd - performance.timing.navigationStart"


class DelayStrategy(Protocol):
    async def get_delay(self) -> int: ...


class FixedDelayStrategy:
    def __init__(self, delay_ms: int):
        if delay_ms < 0:
            raise ConfigError("fixed delay must be >= 0")
        self.delay_ms = delay_ms

    async def get_delay(self) -> int:
        return self.delay_ms


class RandomDelayStrategy:
    """Uniformly random delay in ``[min_delay_ms, max_delay_ms]``, both inclusive."""

    def __init__(self, min_delay_ms: int, max_delay_ms: int, rng: Optional[random.Random] = None):
        if min_delay_ms > max_delay_ms:
            raise ConfigError("delay.min_delay_ms must be <= delay.max_delay_ms")
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()

    async def get_delay(self) -> int:
        return self._rng.randint(self.min_delay_ms, self.max_delay_ms)


class AdaptiveDelayStrategy:
    """Waits as long as the last page took to load, clamped to the configured bounds.

    The load time is read from the renderer through the Navigation Timing API
    after every cycle. Cycles that did not load a page (errors, redirects,
    non-HTML content) may report stale or negative timings; a negative or
    missing sample falls back to the lower bound.
    """

    def __init__(self, min_delay_ms: int, max_delay_ms: int, renderer: ScriptingRenderer):
        if min_delay_ms > max_delay_ms:
            raise ConfigError("delay.min_delay_ms must be <= delay.max_delay_ms")
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.renderer = renderer
        self.last_load_time_ms: Optional[int] = None

    @classmethod
    async def create(cls, min_delay_ms: int, max_delay_ms: int, renderer: Any) -> 'AdaptiveDelayStrategy':
        """Build the strategy after checking the renderer can measure load times.

        Raises:
            UnsupportedCapabilityError: if the renderer cannot execute scripts or
                the browser does not implement the Navigation Timing API
        """
        if not callable(getattr(renderer, "execute_script", None)):
            raise UnsupportedCapabilityError(
                "Adaptive crawl delay requires a renderer that can execute scripts"
            )
        try:
            supported = await renderer.execute_script(TIMING_SUPPORT_SCRIPT)
        except RenderError as e:
            raise UnsupportedCapabilityError(f"Could not query Navigation Timing support: {e}") from e
        if not supported:
            raise UnsupportedCapabilityError("The Navigation Timing API is not supported by the browser")
        return cls(min_delay_ms, max_delay_ms, renderer)

    def delay_for(self, load_time_ms: Optional[float]) -> int:
        if load_time_ms is None or load_time_ms < 0:
            return self.min_delay_ms
        return int(min(max(load_time_ms, self.min_delay_ms), self.max_delay_ms))

    async def get_delay(self) -> int:
        try:
            sample = await self.renderer.execute_script(LOAD_TIME_SCRIPT)
        except RenderError as e:
            logger.warning(f"Could not measure page load time: {e}")
            sample = None
        self.last_load_time_ms = int(sample) if isinstance(sample, (int, float)) else None
        return self.delay_for(self.last_load_time_ms)


async def create_delay_strategy(config: DelayConfig, renderer: Any) -> DelayStrategy:
    """Build the delay strategy selected by ``config.strategy``.

    Raises:
        ConfigError: if the bounds are inconsistent
        UnsupportedCapabilityError: for adaptive delay on an incapable renderer
    """
    if config.strategy == DelayStrategyType.FIXED:
        strategy = FixedDelayStrategy(config.fixed_delay_ms)
    elif config.strategy == DelayStrategyType.RANDOM:
        strategy = RandomDelayStrategy(config.min_delay_ms, config.max_delay_ms)
    elif config.strategy == DelayStrategyType.ADAPTIVE:
        strategy = await AdaptiveDelayStrategy.create(config.min_delay_ms, config.max_delay_ms, renderer)
    else:
        raise ConfigError(f"Unsupported crawl delay strategy: {config.strategy}")

    logger.info(f"Crawl delay strategy: {config.strategy.value}")
    return strategy
