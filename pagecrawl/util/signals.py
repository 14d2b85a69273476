"""
Signal handlers for graceful shutdown and status reporting
"""

import asyncio
import logging
import signal
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class SignalHandler:
    """Routes UNIX signals to crawler callbacks on the event loop thread"""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.stop_callback: Optional[Callable[[], None]] = None
        self.status_callback: Optional[Callable[[], Dict[str, Any]]] = None
        self._original_handlers = {}

    def setup(self):
        """Register signal handlers"""
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, self._handle_shutdown)
        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, self._handle_shutdown)
        if hasattr(signal, "SIGUSR1"):
            self._original_handlers[signal.SIGUSR1] = signal.signal(signal.SIGUSR1, self._handle_status)

    def cleanup(self):
        """Restore original signal handlers"""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _handle_shutdown(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown"""
        sig_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"{sig_name} received - initiating graceful shutdown...")
        if self.stop_callback:
            self.loop.call_soon_threadsafe(self.stop_callback)

    def _handle_status(self, signum, frame):
        """Handle SIGUSR1 for status dump"""
        if not self.status_callback:
            logger.info("No status callback registered")
            return
        logger.info("=== Crawler status (SIGUSR1) ===")
        for key, value in self.status_callback().items():
            logger.info(f"  {key}: {value}")

    def on_stop(self, callback: Callable[[], None]):
        """Register callback for graceful shutdown"""
        self.stop_callback = callback

    def on_status(self, callback: Callable[[], Dict[str, Any]]):
        """Register callback for status reporting"""
        self.status_callback = callback
