"""Exception hierarchy for the crawl engine.

Probe and render failures are raised by the collaborators and converted to
crawl events by the engine; they never escape a running crawl. The remaining
exceptions cover API misuse, broken configuration and unreadable snapshots.
"""


class CrawlerError(Exception):
    """Base class for all crawler errors."""


class ConfigError(CrawlerError, ValueError):
    """Raised when the configuration file is missing or malformed."""


class UnsupportedCapabilityError(CrawlerError):
    """Raised when the renderer lacks a capability the configuration needs."""


# =========================================================================
# Engine state machine misuse
# =========================================================================

class AlreadyRunningError(CrawlerError):
    """Raised by start/resume/add_seed when the engine is not stopped."""


class NotRunningError(CrawlerError):
    """Raised by stop/feed when the engine is not running."""


class StopAlreadyRequestedError(CrawlerError):
    """Raised by stop when a stop has already been requested."""


class NotStartedError(CrawlerError):
    """Raised by save_state when there is no crawl state to save."""


# =========================================================================
# Frontier
# =========================================================================

class EmptyFrontierError(CrawlerError):
    """Raised when a candidate is requested from an empty frontier."""


class SnapshotError(CrawlerError):
    """Raised when frontier state cannot be exported or imported."""


class SnapshotDecodeError(SnapshotError):
    """Raised when snapshot bytes are truncated, corrupt or malformed."""


class SnapshotVersionError(SnapshotError):
    """Raised when a snapshot was written by an incompatible schema version."""

    def __init__(self, version: int):
        super().__init__(f"Unsupported snapshot version: {version}")
        self.version = version


# =========================================================================
# Collaborator failures (converted to events by the engine)
# =========================================================================

class ProbeFailedError(CrawlerError):
    """Raised by a probe transport when the HEAD request could not complete."""


class RenderError(CrawlerError):
    """Raised by a renderer when navigation fails for a reason other than a timeout."""


class NavigationTimeoutError(RenderError):
    """Raised by a renderer when the page did not load within its timeout."""
