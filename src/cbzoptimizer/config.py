"""Default settings shared by the CLI and the library entry points"""

import os

DEFAULT_QUALITY = 85
DEFAULT_PARALLELISM = 2
DEFAULT_TIMEOUT = 0  # seconds, 0 means no timeout
DEFAULT_LOG_LEVEL = os.environ.get("CBZOPTIMIZER_LOG_LEVEL", "info").lower()

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("PIL", "watchdog")

# How often watch mode threads poll for shutdown, in seconds
WATCH_POLL_INTERVAL = 0.2
