"""
Domain Events Module

Architectural Intent:
- Base classes for domain events following DDD principles
- Events are immutable and capture significant cluster lifecycle occurrences
- Events are collected in the cluster aggregate and dispatched via event bus
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat(), init=False, repr=False
    )
    aggregate_id: str = ""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at,
            "event_type": self.event_type,
        }


@dataclass(frozen=True)
class ClusterCreationStartedEvent(DomainEvent):
    cloud: str = ""
    location: str = ""


@dataclass(frozen=True)
class ClusterRunningEvent(DomainEvent):
    node_pool_count: int = 0


@dataclass(frozen=True)
class ClusterUpdateStartedEvent(DomainEvent):
    pass


@dataclass(frozen=True)
class ClusterDeletionStartedEvent(DomainEvent):
    pass


@dataclass(frozen=True)
class ClusterDeletedEvent(DomainEvent):
    pass


@dataclass(frozen=True)
class ClusterFailedEvent(DomainEvent):
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["error_message"] = self.error_message
        return data
