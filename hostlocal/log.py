import logging
import sys

from .config import Settings

FORMAT = '[%(asctime)s] [%(levelname)s] [%(module)s.%(funcName)s] %(message)s'


def init_logging(settings: Settings) -> None:
    # stdout carries the result document, so logs go to a file or stderr
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(FORMAT))

    logger = logging.getLogger("hostlocal")
    logger.handlers = [handler]
    logger.setLevel(settings.log_level.upper())
    logger.propagate = False
