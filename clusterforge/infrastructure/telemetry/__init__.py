"""
clusterforge Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for observability
- Pipeline step traces and lifecycle metrics export
"""

from clusterforge.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
