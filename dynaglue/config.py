"""
Configuration management for dynaglue.

Configuration comes from environment variables, with typed frozen
dataclasses and sensible defaults for local development. Only the backend
adapter and logging setup read it; the key assembly and wrapping code is
configured entirely through collection definitions.

Invariants:
    - All settings have defaults that work against a local DynamoDB
    - Credentials are never read here, the AWS credential chain owns them
    - Secrets are never logged

How to change safely:
    - Add new settings with defaults that keep existing behaviour
    - Keep environment variable names stable
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DynamoConfig:
    """DynamoDB backend configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (DynamoDB Local, LocalStack)
        request_timeout: Seconds to wait for a single backend call
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> DynamoConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAGLUE_DYNAMODB_ENDPOINT_URL"),
            request_timeout=float(os.getenv("DYNAGLUE_REQUEST_TIMEOUT", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
        log_requests: Whether outgoing DynamoDB requests are logged at DEBUG
    """

    log_level: str = "INFO"
    log_format: str = "json"
    log_requests: bool = False

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            log_requests=os.getenv("DYNAGLUE_LOG_REQUESTS", "false").lower() == "true",
        )


@dataclass
class DynaglueConfig:
    """Complete configuration.

    Attributes:
        dynamo: Backend configuration
        observability: Logging configuration
    """

    dynamo: DynamoConfig = field(default_factory=DynamoConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> DynaglueConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If a setting is invalid.
        """
        config = cls(
            dynamo=DynamoConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.dynamo.region:
            raise ValueError("AWS_REGION must not be empty")
        if self.dynamo.request_timeout <= 0:
            raise ValueError("DYNAGLUE_REQUEST_TIMEOUT must be positive")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "dynaglue configuration loaded",
            extra={
                "region": self.dynamo.region,
                "endpoint": self.dynamo.endpoint_url or "AWS",
                "request_timeout": self.dynamo.request_timeout,
                "log_level": self.observability.log_level,
                "log_requests": self.observability.log_requests,
            },
        )
