import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml

from .config import LOG_FORMAT, LOG_LEVEL

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'message', 'asctime',
    'tenant_id', 'job_type', 'component',
}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter with structured fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "component": getattr(record, 'component', 'app'),
            "tenant_id": getattr(record, 'tenant_id', None),
            "job_type": getattr(record, 'job_type', None),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _default_config(log_level: str, log_format: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "text": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": log_format,
                "stream": "ext://sys.stdout"
            }
        },
        "loggers": {
            "hrm_jobs": {"level": log_level, "propagate": True},
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": log_level, "handlers": ["console"]}
    }


def setup_logging(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Setup logging configuration from YAML file or environment"""
    log_format = os.getenv("LOG_FORMAT", LOG_FORMAT)
    log_level = os.getenv("LOG_LEVEL", LOG_LEVEL).upper()
    if log_format not in ("json", "text"):
        log_format = "json"

    path = config_path or os.getenv("LOGGING_CONFIG", "LOGGING.yaml")
    config = None
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logging.getLogger("hrm_jobs").warning(f"Could not load {path}: {e}")

    if not config:
        config = _default_config(log_level, log_format)

    # Environment overrides win over the file
    if log_format == "text":
        for handler in config.get("handlers", {}).values():
            if "formatter" in handler:
                handler["formatter"] = "text"
    for logger_cfg in config.get("loggers", {}).values():
        logger_cfg["level"] = log_level

    logging.config.dictConfig(config)
    return config
