"""Configure logging for the application.

Progress goes to stderr so that stdout carries only command output (JSON, CSV
or saved file paths) and can be piped.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Every CDN probe is an httpx request; these stay at WARNING unless debugging
HTTP_LOGGERS = ("httpx", "httpcore")


def _level(debug: bool, quiet: bool) -> int:
    if debug:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(debug: bool = False, quiet: bool = False) -> None:
    """Send ``insta_media`` logs to stderr.

    ``debug`` wins over ``quiet``. Calling this again replaces the handler
    installed by the previous call.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    app_logger = logging.getLogger("insta_media")
    app_logger.setLevel(_level(debug, quiet))
    for existing in list(app_logger.handlers):
        app_logger.removeHandler(existing)
    app_logger.addHandler(handler)

    http_level = logging.DEBUG if debug else logging.WARNING
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
