import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from .config import CrawlerConfig
from .engine import CrawlEngine
from .errors import CrawlerError, NotRunningError, SnapshotError, StopAlreadyRequestedError
from .events import NoOpEventHandler
from .io.event_log import EventLogHandler
from .util.signals import SignalHandler

logger = logging.getLogger("pagecrawl")


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _attach_file_logging(log_path: Path, level: str) -> None:
    root = logging.getLogger()

    for h in root.handlers:
        if isinstance(h, logging.FileHandler):
            if Path(getattr(h, "baseFilename", "")) == log_path.resolve():
                return

    _ensure_dir(log_path.parent)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)


def setup_logging(config: CrawlerConfig, level_override: Optional[str] = None) -> None:
    level = (level_override or config.logs.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if config.logs.log_file:
        _attach_file_logging(Path(config.logs.log_file), level)


def _request_stop(engine: CrawlEngine) -> None:
    try:
        engine.stop()
    except StopAlreadyRequestedError:
        logger.info("Stop already requested - waiting for the current page to finish")
    except NotRunningError:
        logger.info("Crawler is not running yet - nothing to stop")


async def run_crawler(engine: CrawlEngine, config: CrawlerConfig, resume: bool) -> None:
    signals = SignalHandler(asyncio.get_running_loop())
    signals.on_stop(lambda: _request_stop(engine))
    signals.on_status(engine.status)
    signals.setup()

    state_path = Path(config.state_file) if config.state_file else None
    save_on_exit = True

    try:
        if resume and state_path and state_path.exists():
            logger.info(f"Resuming crawl from {state_path}")
            try:
                await engine.resume(state_path.read_bytes())
            except SnapshotError:
                # The unreadable snapshot stays on disk as it was
                save_on_exit = False
                raise
        else:
            if resume:
                logger.warning("No saved state found - starting a fresh crawl")
            await engine.start()
    finally:
        signals.cleanup()
        if save_on_exit and state_path and engine.frontier is not None:
            engine.frontier.save(str(state_path))


def main() -> None:
    parser = argparse.ArgumentParser(description="Browser-rendering web crawler")

    parser.add_argument(
        "--config",
        required=False,
        help="Path to crawler config YAML file",
        default="config.yaml",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Resume from the saved frontier state instead of the configured seeds",
    )
    parser.add_argument(
        "--log-level",
        required=False,
        help="Override logs.log_level from the config file",
    )

    args = parser.parse_args()

    try:
        config = CrawlerConfig.from_yaml(args.config)
    except CrawlerError as e:
        parser.error(str(e))

    setup_logging(config, args.log_level)

    logger.info(f"Loaded configuration from: {args.config}")
    logger.info(f"Seeds: {len(config.seeds)}")
    logger.info(f"Delay strategy: {config.delay.strategy.value}")
    logger.info(f"Max crawl depth: {config.frontier.max_crawl_depth}")
    logger.info(f"State file: {config.state_file}")

    if config.logs.event_log_file:
        handler = EventLogHandler(config.logs.event_log_file)
    else:
        handler = NoOpEventHandler()

    engine = CrawlEngine(config, handler)
    try:
        asyncio.run(run_crawler(engine, config, args.resume))
    except CrawlerError as e:
        logger.error(f"Crawl aborted: {e}")
        raise SystemExit(1) from e
    finally:
        if isinstance(handler, EventLogHandler):
            handler.close()


if __name__ == "__main__":
    main()
