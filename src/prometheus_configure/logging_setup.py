import os
import json
import logging
from logging.handlers import RotatingFileHandler


def _is_structured(record) -> bool:
    return (hasattr(record, 'json_fields') and
            record.json_fields.get('structured_event', False))


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one compact JSON object per structured event.
    """
    def format(self, record):
        if _is_structured(record):
            return json.dumps(record.json_fields, separators=(',', ':'), default=str)
        return super().format(record)


class StructuredFilter(logging.Filter):
    """
    Filter that only allows structured log events to pass through.

    Records at or above `passthrough_level` pass as well, so fatal messages
    still reach a console that otherwise shows only structured events.
    """
    def __init__(self, passthrough_level: int | None = None):
        super().__init__()
        self.passthrough_level = passthrough_level

    def filter(self, record):
        if _is_structured(record):
            return True
        return self.passthrough_level is not None and record.levelno >= self.passthrough_level


class NonStructuredFilter(logging.Filter):
    """
    Filter that only allows non-structured log events to pass through.
    """
    def filter(self, record):
        return not _is_structured(record)


def setup_logger(name: str, level: str, log_file: str | None, max_bytes: int, backup_count: int,
                 enable_structured_console: bool = False, enable_structured_file: bool = False,
                 structured_log_file: str | None = None):
    """
    Logger setup for a configure run.

    Human-readable records go to stderr (so fatal messages land on the error
    stream) and optionally to a rotating log file. Structured events go to a
    JSON-lines file, or replace the console output when
    enable_structured_console is set.

    Args:
        enable_structured_console (bool): Output JSON to console for structured events
        enable_structured_file (bool): Output JSON lines to a separate structured log file
        structured_log_file (str): Path to structured JSON log file
    """
    logger_name = name or os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE")
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Repeated setup (tests, setup -> configure) must not duplicate output
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    regular_formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')
    structured_formatter = StructuredFormatter()

    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, level, logging.INFO))

    if enable_structured_console:
        ch.setFormatter(structured_formatter)
        ch.addFilter(StructuredFilter(passthrough_level=logging.CRITICAL))
    else:
        ch.setFormatter(regular_formatter)
        ch.addFilter(NonStructuredFilter())

    logger.addHandler(ch)

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
            fh.setLevel(getattr(logging, level, logging.INFO))
            fh.setFormatter(regular_formatter)
            fh.addFilter(NonStructuredFilter())
            logger.addHandler(fh)
            logger.debug(f"Regular file logging enabled: {log_file}")
        except OSError as e:
            logger.warning(f"Could not setup regular file logging at {log_file}: {e}")

    if enable_structured_file and structured_log_file:
        try:
            os.makedirs(os.path.dirname(structured_log_file) or '.', exist_ok=True)
            sfh = RotatingFileHandler(structured_log_file, maxBytes=max_bytes, backupCount=backup_count)
            sfh.setLevel(logging.DEBUG)
            sfh.setFormatter(structured_formatter)
            sfh.addFilter(StructuredFilter())
            logger.addHandler(sfh)
            logger.debug(f"Structured JSON file logging enabled: {structured_log_file}")
        except OSError as e:
            logger.warning(f"Could not setup structured file logging at {structured_log_file}: {e}")

    return logger
