"""Observability helpers (structured logging)."""

from stackgraph.observability.logging import get_logger, redact_secrets, setup_logging

__all__ = ["get_logger", "redact_secrets", "setup_logging"]
