# geojson_api/logging_setup.py

import json
import logging

LOGGER_NAME = "geojson_api"


class JSONLogFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "level": record.levelname,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
            "logger": record.name,
        }
        if hasattr(record, "phase"):
            log_record["phase"] = record.phase
        if hasattr(record, "meta"):
            log_record["meta"] = record.meta
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach the JSON handler to the package logger once and set its level."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not any(getattr(h, "_geojson_api", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JSONLogFormatter())
        handler._geojson_api = True
        logger.addHandler(handler)
    return logger


def log_step(phase: str, level: int = logging.INFO, **meta) -> None:
    """Log one pipeline step; meta carries sizes, counts and ids, never document content."""
    logging.getLogger(f"{LOGGER_NAME}.steps").log(level, phase, extra={"phase": phase, "meta": meta})
