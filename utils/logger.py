"""Rotating file and console logging for request and API diagnostics.

Call sites pass context through ``extra=`` (``complaint_id``, ``status``,
``api_message`` and so on). The formatter appends those fields to the line as
``key=value`` pairs so they survive into ``portal.log``.
"""
import logging
import os
from logging.handlers import RotatingFileHandler

from flask import g, has_request_context, request

LOG_FILENAME = "portal.log"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_user", "request_path"}


class RequestContextFilter(logging.Filter):
    """Stamp each record with the signed-in user and request path, when there is a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_user = "-"
        record.request_path = "-"
        if has_request_context():
            state = g.get("auth_session")
            user = getattr(state, "user", None)
            record.request_user = user.username if user is not None else "anonymous"
            record.request_path = request.path
        return True


class ExtraFieldsFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extras:
            line += " | " + " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return line


def init_logging(app) -> logging.Logger:
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, LOG_FILENAME)

    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = ExtraFieldsFormatter(
        fmt="%(asctime)s | %(levelname)s | %(module)s:%(lineno)d | %(request_user)s %(request_path)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    context_filter = RequestContextFilter()

    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
    stream_handler = logging.StreamHandler()
    for handler in (file_handler, stream_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)

    logger = logging.getLogger(app.name)
    logger.setLevel(level)
    # create_app may run more than once per process (tests); do not stack handlers.
    for old in logger.handlers:
        old.close()
    logger.handlers = [file_handler, stream_handler]
    logger.propagate = False

    logger.info("Logging initialized", extra={"log_path": log_path})
    return logger
