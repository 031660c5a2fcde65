"""
Logging utilities for structured logging
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
})


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


class CloudFilter(logging.Filter):
    """Attach device context to records that carry a device id"""

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log records"""
        # Suppress zeroconf browser cleanup noise (non-fatal)
        if record.levelno == logging.ERROR:
            msg = record.getMessage()
            if "zeroconf" in record.name.lower() and "ServiceBrowser" in msg:
                return False

        if hasattr(record, 'device_id'):
            record.device_context = {
                "device_id": record.device_id
            }

        return True


def setup_logging(log_level: str = "INFO", log_format: str = "json",
                  log_file: Optional[str] = None) -> None:
    """
    Setup structured logging for the cloud server.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("json", "text" or "simple")
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    elif log_format.lower() == "simple":
        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CloudFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(CloudFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('zeroconf').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger with cloud context.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_device_event(logger: logging.Logger, device_id: str, event_type: str,
                     **kwargs) -> None:
    """
    Log a change to a device's state.

    Args:
        logger: Logger instance
        device_id: Device id
        event_type: Event name (e.g. "volume", "registered")
        **kwargs: Additional context
    """
    logger.info(
        f"Device event: {event_type} ({device_id})",
        extra={
            "device_id": device_id,
            "event_type": event_type,
            **kwargs
        }
    )


def log_zone_event(logger: logging.Logger, master_id: str, action: str,
                   slaves: Optional[list] = None) -> None:
    """
    Log a zone topology change.

    Args:
        logger: Logger instance
        master_id: Zone master device id
        action: What happened to the zone
        slaves: Slave ids after the change
    """
    logger.info(
        f"Zone {action}: master={master_id} slaves={slaves or []}",
        extra={
            "device_id": master_id,
            "event_type": "zone",
            "zone_action": action,
            "slaves": slaves or []
        }
    )


def log_resolution(logger: logging.Logger, strategy: str, source: str,
                   location: str, **kwargs) -> None:
    """
    Log which resolution strategy produced a playable location.

    Args:
        logger: Logger instance
        strategy: Strategy name (passthrough, directory, ...)
        source: Content source
        location: Resulting location
        **kwargs: Additional context
    """
    logger.info(
        f"Resolved {source} via {strategy}: {location}",
        extra={
            "event_type": "resolution",
            "strategy": strategy,
            "source": source,
            "location": location,
            **kwargs
        }
    )


def log_error(logger: logging.Logger, device_id: Optional[str], error: Exception,
              context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log errors with context.

    Args:
        logger: Logger instance
        device_id: Device id if known
        error: Exception that occurred
        context: Additional context
    """
    logger.error(
        f"Error occurred: {str(error)}",
        extra={
            "device_id": device_id,
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {}
        },
        exc_info=True
    )
