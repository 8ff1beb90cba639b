"""
Domain Events Package

Architectural Intent:
- Contains cluster lifecycle events
- Events are the primary mechanism for cross-boundary communication
"""

from clusterforge.domain.events.event_base import (
    DomainEvent,
    ClusterCreationStartedEvent,
    ClusterRunningEvent,
    ClusterUpdateStartedEvent,
    ClusterDeletionStartedEvent,
    ClusterDeletedEvent,
    ClusterFailedEvent,
)

__all__ = [
    "DomainEvent",
    "ClusterCreationStartedEvent",
    "ClusterRunningEvent",
    "ClusterUpdateStartedEvent",
    "ClusterDeletionStartedEvent",
    "ClusterDeletedEvent",
    "ClusterFailedEvent",
]
