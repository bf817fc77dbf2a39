"""Observability: structured logging and optional Logfire tracing.

setup_logging:
    Console + rotating file handlers, text or JSON, with run/stage tags.

set_run_context / set_stage_context / clear_context:
    Context-variable tags picked up by every log record.

setup_tracing / trace_operation:
    Logfire spans around pipeline stages (no-ops when disabled).

Example:
    >>> from observability import setup_logging, trace_operation
    >>> setup_logging(config)
    >>> with trace_operation("gather"):
    ...     pass
"""

from observability.logging import clear_context, set_run_context, set_stage_context, setup_logging
from observability.tracing import TracingContext, setup_tracing, trace_operation

__all__ = [
    "setup_logging",
    "set_run_context",
    "set_stage_context",
    "clear_context",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
