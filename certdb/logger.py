import json
import logging
import os
import sys
import time

LEVEL_ENV = "CERTDB_LOG_LEVEL"


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, name, msg (+ exc when present)."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def get_logger(name="certdb", level=None, to_file=None):
    """
    Logger for certdb components, writing JSON lines to stdout.

    The level defaults to $CERTDB_LOG_LEVEL, else INFO. Handlers are only
    attached the first time a given name is requested.
    """
    logger = logging.getLogger(name)
    if level is None:
        level = os.getenv(LEVEL_ENV, "INFO").upper()
    logger.setLevel(level)

    if not logger.handlers:
        formatter = JSONFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
