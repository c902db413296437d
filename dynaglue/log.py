"""
Logging helpers for dynaglue.

The library itself only emits records through module-level loggers.
setup_logging() is for applications (and the live test suite) that want
the same output format the service deployments use.

Invariants:
    - Outgoing backend requests are logged under ``dynaglue.dynamodb``
    - Request logging never happens above DEBUG
"""

from __future__ import annotations

import logging
from typing import Any

import json_log_formatter

from .config import ObservabilityConfig

REQUEST_LOGGER_NAME = "dynaglue.dynamodb"

_request_logger = logging.getLogger(REQUEST_LOGGER_NAME)


def setup_logging(config: ObservabilityConfig | None = None) -> None:
    """Configure root logging based on configuration.

    Args:
        config: Observability configuration (loaded from env if not provided)
    """
    config = config or ObservabilityConfig.from_env()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    if config.log_requests:
        _request_logger.setLevel(logging.DEBUG)

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def debug_dynamo(operation: str, request: Any) -> None:
    """Log an outgoing backend request."""
    _request_logger.debug(
        "operation=%s request=%r",
        operation,
        request,
        extra={"operation": operation},
    )
