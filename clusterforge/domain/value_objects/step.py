"""
Step Value Object

Architectural Intent:
- Atomic unit of infrastructure work with a forward and an optional
  compensating operation
- Steps are opaque to the pipeline: provider adapters build them as closures
  over their SDK clients
- Both operations receive the pipeline context dict so later steps can read
  the outputs (VPC id, subnet ids, role ARN) earlier steps wrote into it
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

StepContext = dict[str, Any]
StepOperation = Callable[[StepContext], Awaitable[Any]]


@dataclass(frozen=True)
class Step:
    """
    Attributes:
        name: Unique label used in the pipeline ledger and in logs.
        execute: Forward operation.
        compensate: Undo for execute; None rolls back as a no-op.
        destructive: Deleting steps; they are never compensated.
        timeout: Seconds allowed for either operation; None uses the
                 pipeline default.
    """

    name: str
    execute: StepOperation
    compensate: Optional[StepOperation] = None
    destructive: bool = False
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Step name cannot be empty")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Step timeout must be positive, got {self.timeout}")
