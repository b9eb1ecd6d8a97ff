"""Logfire observability for the Library Circulation MCP Server."""

import logging

import logfire

from .config import ObservabilityConfig
from .context import trace_repository_operation
from .decorators import trace_resource, trace_tool

logger = logging.getLogger(__name__)


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure Logfire once at server start."""
    config = config or ObservabilityConfig()

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=config.token or None,
        service_name=config.project_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=None if config.console_output else False,
    )

    if config.environment == "production":
        logfire.instrument_system_metrics()


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "trace_repository_operation",
    "trace_resource",
    "trace_tool",
]
