import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from . import __version__

APP_LOGGER_NAME = "scan_app"

CONSOLE_FORMAT = '%(levelname)-8s: %(message)s'
DETAILED_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s'

# HTTP stack behind the resolver; kept at WARNING.
NOISY_LIBRARY_LOGGERS = ("urllib3", "requests", "tmdbv3api")


def _drop_handlers(logger: logging.Logger):
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


def _file_handler(log_file) -> logging.FileHandler:
    path = Path(log_file).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S%z'))
    return handler


def setup_logging(log_level_console=logging.INFO, log_file=None, quiet=False):
    """
    Configures the `scan_app` logger tree.

    Console output goes to stderr so `scan --json` keeps stdout clean for
    events; `quiet` limits it to errors. The optional file log always records
    DEBUG and starts each session with a header naming the command line.
    """
    log = logging.getLogger(APP_LOGGER_NAME)
    log.setLevel(logging.DEBUG)
    _drop_handlers(log)

    console_level = logging.ERROR if quiet else log_level_console
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_fmt = DETAILED_FORMAT if console_level <= logging.DEBUG else CONSOLE_FORMAT
    console_handler.setFormatter(logging.Formatter(console_fmt, datefmt='%H:%M:%S'))
    log.addHandler(console_handler)

    for name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        try:
            log.addHandler(_file_handler(log_file))
        except OSError as e:
            log.error(f"Failed to configure file logging to '{log_file}': {e}")
        else:
            log.info(f"--- Log session started: {datetime.now(timezone.utc).isoformat()} (scanner {__version__}) ---")
            log.info(f"Command: {' '.join(sys.argv)}")
    return log
