"""OpenTelemetry setup for the Airabook backend.

Call ``configure_observability()`` before FastAPI is imported so the Azure
Monitor distro can instrument HTTP and database calls.

PII guidance: span attributes carry counts, indexes and durations only.
Never attach message content, page text, transcripts or user emails; link
spans to logs through the correlation ID instead.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

_ENV_ENABLE_OBSERVABILITY = "ENABLE_OBSERVABILITY"
_ENV_APP_INSIGHTS_CONN_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"

_DEFAULT_SERVICE_NAME = "airabook-backend"

# Paths excluded from automatic tracing
EXCLUDED_URLS = "health,health/,favicon.ico"


def _is_observability_enabled() -> bool:
    value = os.getenv(_ENV_ENABLE_OBSERVABILITY, "false").lower()
    return value in {"true", "1", "yes", "on"}


@lru_cache
def configure_observability() -> bool:
    """Configure Azure Monitor exporting when enabled via environment.

    Returns:
        True if an exporter was configured, False otherwise.

    Environment Variables:
        ENABLE_OBSERVABILITY: Set to "true" to enable (default: "false")
        APPLICATIONINSIGHTS_CONNECTION_STRING: Azure Monitor connection string
        OTEL_SERVICE_NAME: Service name for traces (default: "airabook-backend")
    """
    if not _is_observability_enabled():
        logger.info(
            "Observability disabled. Set %s=true to enable Azure Monitor.",
            _ENV_ENABLE_OBSERVABILITY,
        )
        return False

    connection_string = os.getenv(_ENV_APP_INSIGHTS_CONN_STRING)
    if not connection_string:
        logger.warning(
            "Observability enabled but %s not set. Skipping Azure Monitor setup.",
            _ENV_APP_INSIGHTS_CONN_STRING,
        )
        return False

    try:
        # Optional extra: pip install airabook-backend[observability]
        from azure.monitor.opentelemetry import configure_azure_monitor
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry is not installed; spans stay local. "
            "Install the 'observability' extra to export them."
        )
        return False

    os.environ.setdefault("OTEL_SERVICE_NAME", _DEFAULT_SERVICE_NAME)
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)
    configure_azure_monitor(connection_string=connection_string)
    logger.info(
        "Azure Monitor observability configured for service '%s'",
        os.getenv(_ENV_OTEL_SERVICE_NAME, _DEFAULT_SERVICE_NAME),
    )
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom spans.

    Without a configured SDK the API hands back a no-op tracer, so callers
    can open spans unconditionally.

    Example:
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span("rerank") as span:
            span.set_attribute("rerank.candidates", len(candidates))
    """
    return trace.get_tracer(name)
