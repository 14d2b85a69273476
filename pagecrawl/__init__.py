"""
Single-session crawl engine with a persistent priority frontier.

This package provides:
- CrawlEngine: probe, classify, render and dispatch loop with cooperative stop
- CrawlFrontier: deduplicated priority queue with versioned snapshots
- Delay strategies: fixed, random and adaptive crawl delays
- Event types and the handler interface they are delivered to
"""

from .config import CrawlerConfig, DelayStrategyType
from .delay import (
    AdaptiveDelayStrategy,
    FixedDelayStrategy,
    RandomDelayStrategy,
    create_delay_strategy,
)
from .engine import CrawlEngine, EngineState
from .errors import (
    AlreadyRunningError,
    ConfigError,
    CrawlerError,
    EmptyFrontierError,
    NotRunningError,
    NotStartedError,
    SnapshotDecodeError,
    SnapshotError,
    SnapshotVersionError,
    StopAlreadyRequestedError,
    UnsupportedCapabilityError,
)
from .events import (
    CrawlEventHandler,
    NonHtmlContentEvent,
    NoOpEventHandler,
    PageLoadEvent,
    PageLoadTimeoutEvent,
    RequestErrorEvent,
    RequestRedirectEvent,
)
from .frontier.crawl_frontier import CrawlFrontier
from .request import CrawlCandidate, CrawlRequest

__version__ = "1.0.0"

__all__ = [
    'CrawlerConfig',
    'DelayStrategyType',
    'AdaptiveDelayStrategy',
    'FixedDelayStrategy',
    'RandomDelayStrategy',
    'create_delay_strategy',
    'CrawlEngine',
    'EngineState',
    'AlreadyRunningError',
    'ConfigError',
    'CrawlerError',
    'EmptyFrontierError',
    'NotRunningError',
    'NotStartedError',
    'SnapshotDecodeError',
    'SnapshotError',
    'SnapshotVersionError',
    'StopAlreadyRequestedError',
    'UnsupportedCapabilityError',
    'CrawlEventHandler',
    'NonHtmlContentEvent',
    'NoOpEventHandler',
    'PageLoadEvent',
    'PageLoadTimeoutEvent',
    'RequestErrorEvent',
    'RequestRedirectEvent',
    'CrawlFrontier',
    'CrawlCandidate',
    'CrawlRequest',
]
