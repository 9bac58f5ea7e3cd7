import logging
import sys
from typing import Dict, Any, Optional

from ridedesk.config.settings import settings


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure structured logging for the application"""

    logger = logging.getLogger("ridedesk")
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger


def level_from_name(name: str) -> int:
    """Map a LOG_LEVEL name such as ``"debug"`` to a logging level, INFO when unknown."""
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def _format_context(context: Dict[str, Any]) -> str:
    return " | ".join([f"{k}={v}" for k, v in context.items()])


def log_request_info(
    logger: logging.Logger, endpoint: str, tenant_id: Optional[str] = None, **kwargs: Any
) -> None:
    """Log request information with context"""
    extra_info = _format_context(kwargs)
    message = f"Request: {endpoint}"
    if tenant_id:
        message += f" | tenant_id={tenant_id}"
    if extra_info:
        message += f" | {extra_info}"
    logger.info(message)


def log_error_with_context(
    logger: logging.Logger, error: Exception, context: Dict[str, Any]
) -> None:
    """Log errors with contextual information"""
    logger.error(f"Error: {str(error)} | Context: {_format_context(context)}")


def log_performance_metric(
    logger: logging.Logger, operation: str, duration_ms: float, **kwargs: Any
) -> None:
    """Log performance metrics"""
    extra_info = _format_context(kwargs)
    message = f"Performance: {operation} | duration_ms={duration_ms:.2f}"
    if extra_info:
        message += f" | {extra_info}"
    logger.info(message)


# Create application-wide logger instance
app_logger = setup_logging(level_from_name(settings.LOG_LEVEL))
