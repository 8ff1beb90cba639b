"""
Telemetry Port

Architectural Intent:
- Abstract interface for tracing pipeline steps and recording lifecycle
  metrics
- Implementations must be safe to call when no backend is configured
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class TelemetryPort(Protocol):
    def start_span(
        self, name: str, attributes: Optional[dict[str, str]] = None
    ) -> Optional[Any]: ...

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None: ...

    def record_step(
        self, step_name: str, phase: str, outcome: str, duration_ms: float
    ) -> None: ...

    def record_operation(self, cloud: str, operation: str, succeeded: bool) -> None: ...
