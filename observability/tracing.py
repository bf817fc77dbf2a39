"""Optional Logfire/OpenTelemetry tracing.

When enabled, each refresh becomes a "pipeline_run" span with child spans
for the gather, score and link stages, and every PydanticAI oracle call is
instrumented automatically.

Requirements:
    pip install logfire

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard

Usage:
    >>> setup_tracing(enabled=True, service_name="intelwatch")
    >>> with trace_operation("gather", {"sources": 4}) as attrs:
    ...     attrs["items"] = 42
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """Process-wide tracing state."""
    enabled: bool = False
    service_name: str = "intelwatch"
    token: str = ""
    _logfire_configured: bool = field(default=False, init=False)

    @property
    def active(self) -> bool:
        return self.enabled and self._logfire_configured


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = "intelwatch",
    token: str = "",
) -> TracingContext:
    """Configure Logfire and instrument PydanticAI.

    Safe to call more than once; Logfire is only configured the first time.
    A missing logfire install or a configuration failure disables tracing
    with a log message instead of raising.
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token

    if not enabled:
        logger.debug("Tracing disabled")
        return _context
    if _context._logfire_configured:
        return _context

    try:
        import logfire

        logfire.configure(
            service_name=service_name,
            token=token or None,
        )
        logfire.instrument_pydantic_ai()

        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)

    except ImportError:
        logger.warning("Logfire not installed. Tracing disabled.")
        _context.enabled = False
    except Exception as e:
        logger.error("Failed to configure Logfire | error=%s", e)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Wrap a block in a span (or a timed no-op when tracing is off).

    Yields a dict; anything put in it is attached to the span on exit.
    """
    start = time.monotonic()
    result_attrs: dict[str, Any] = {}

    try:
        if _context.active:
            import logfire

            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation complete | op=%s duration=%.2fs", name, time.monotonic() - start)
