from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .request import CrawlRequest


class DelayStrategyType(str, Enum):
    FIXED = "fixed"
    RANDOM = "random"
    ADAPTIVE = "adaptive"


@dataclass
class DelayConfig:
    strategy: DelayStrategyType = DelayStrategyType.FIXED
    fixed_delay_ms: int = 0
    min_delay_ms: int = 1000
    max_delay_ms: int = 60000

    def __post_init__(self):
        try:
            self.strategy = DelayStrategyType(str(getattr(self.strategy, "value", self.strategy)).lower())
        except ValueError:
            allowed = ", ".join(s.value for s in DelayStrategyType)
            raise ConfigError(f"delay.strategy must be one of: {allowed}") from None
        if self.fixed_delay_ms < 0:
            raise ConfigError("delay.fixed_delay_ms must be >= 0")
        if self.min_delay_ms < 0:
            raise ConfigError("delay.min_delay_ms must be >= 0")
        if self.max_delay_ms < 0:
            raise ConfigError("delay.max_delay_ms must be >= 0")


@dataclass
class FrontierConfig:
    # None means unbounded
    max_crawl_depth: Optional[int] = None
    filter_duplicate_requests: bool = True
    filter_offsite_requests: bool = False
    allowed_domains: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.max_crawl_depth is not None and self.max_crawl_depth < 0:
            raise ConfigError("frontier.max_crawl_depth must be >= 0 or null")
        self.allowed_domains = [d.strip().lower() for d in self.allowed_domains if d and d.strip()]


@dataclass
class ProbeConfig:
    user_agent: str = "pagecrawl/1.0"
    connect_timeout_ms: int = 4000
    read_timeout_ms: int = 15000
    max_redirects: int = 20

    def __post_init__(self):
        if self.connect_timeout_ms <= 0 or self.read_timeout_ms <= 0:
            raise ConfigError("probe timeouts must be > 0")
        if self.max_redirects < 0:
            raise ConfigError("probe.max_redirects must be >= 0")


@dataclass
class RendererConfig:
    browser: str = "chromium"
    headless: bool = True
    page_load_timeout_ms: int = 30000
    user_agent: Optional[str] = None

    def __post_init__(self):
        if self.browser not in {"chromium", "firefox", "webkit"}:
            raise ConfigError("renderer.browser must be one of: chromium, firefox, webkit")
        if self.page_load_timeout_ms <= 0:
            raise ConfigError("renderer.page_load_timeout_ms must be > 0")


@dataclass
class LogsConfig:
    log_file: Optional[str] = "logs/crawler.log"
    log_level: str = "INFO"
    event_log_file: Optional[str] = "logs/events.jsonl"


@dataclass
class CrawlerConfig:
    seeds: List[CrawlRequest] = field(default_factory=list)
    state_file: Optional[str] = "state/frontier.snapshot"

    delay: DelayConfig = field(default_factory=DelayConfig)
    frontier: FrontierConfig = field(default_factory=FrontierConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    logs: LogsConfig = field(default_factory=LogsConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlerConfig':
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping.")

        try:
            return cls(
                seeds=parse_seeds(data.get('seeds', []) or []),
                state_file=data.get('state_file', "state/frontier.snapshot"),
                delay=DelayConfig(**get_section(data, 'delay')),
                frontier=FrontierConfig(**get_section(data, 'frontier')),
                probe=ProbeConfig(**get_section(data, 'probe')),
                renderer=RendererConfig(**get_section(data, 'renderer')),
                logs=LogsConfig(**get_section(data, 'logs')),
            )
        except TypeError as e:
            # Unknown keys in a section
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str) -> 'CrawlerConfig':
        return cls.from_dict(load_yaml_config(config_path))


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Load a YAML configuration file into a dictionary."""
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Configuration file is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return data


def get_section(config: Dict[str, Any], section: str) -> Dict[str, Any]:
    """Return a configuration section, ensuring it is a mapping."""
    value = config.get(section, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{section}' must be a mapping.")
    return value


def parse_seeds(raw: Any) -> List[CrawlRequest]:
    """Build seed requests from plain URL strings or ``{url, priority, metadata}`` mappings."""
    if not isinstance(raw, list):
        raise ConfigError("seeds must be a list in the configuration file")

    seeds = []
    for entry in raw:
        try:
            if isinstance(entry, str):
                if not entry.strip():
                    continue
                seeds.append(CrawlRequest(url=entry.strip()))
            elif isinstance(entry, dict):
                seeds.append(CrawlRequest(
                    url=str(entry.get('url', '')).strip(),
                    priority=entry.get('priority', 0),
                    metadata=entry.get('metadata'),
                ))
            else:
                raise ConfigError(f"Invalid seed entry: {entry!r}")
        except ConfigError:
            raise
        except ValueError as e:
            raise ConfigError(f"Invalid seed entry {entry!r}: {e}") from e
    return seeds
