"""Progress sinks for chapter conversion.

A sink is anything with ``report(message, current, total)``. The converter
calls it once per input page, in page order; it cannot influence control flow.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def report(self, message: str, current: int, total: int) -> None:
        ...


class NullProgress:
    """Discards every report"""

    def report(self, message: str, current: int, total: int) -> None:
        pass


class LoggingProgress:
    """Logs each report at DEBUG, and every ``every`` pages (and the last) at INFO"""

    def __init__(self, every: int = 10):
        self.every = max(1, every)

    def report(self, message: str, current: int, total: int) -> None:
        if current % self.every == 0 or current == total:
            logger.info("Progress: %d/%d pages - %s", current, total, message)
        else:
            logger.debug("Progress: %d/%d pages - %s", current, total, message)
