"""
Cluster Aggregate

Architectural Intent:
- ClusterSpec is the consistency boundary for one managed Kubernetes cluster
- Lifecycle is managed through state transitions enforced by domain methods
- All state changes produce new instances so a failed operation never leaves
  a half-mutated aggregate behind
- Domain events are collected on the aggregate and published by the
  lifecycle controller after the operation terminates

State machine:
    REQUESTED -> CREATING -> RUNNING -> UPDATING -> RUNNING
    RUNNING -> DELETING -> DELETED
    CREATING | UPDATING | DELETING -> FAILED
    FAILED -> DELETING
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from clusterforge.domain.entities.node_pool import NodePoolCurrent
from clusterforge.domain.events.event_base import (
    ClusterCreationStartedEvent,
    ClusterDeletedEvent,
    ClusterDeletionStartedEvent,
    ClusterFailedEvent,
    ClusterRunningEvent,
    ClusterUpdateStartedEvent,
    DomainEvent,
)
from clusterforge.domain.exceptions import InvalidTransitionError


class ClusterStatus(Enum):
    REQUESTED = "REQUESTED"
    CREATING = "CREATING"
    RUNNING = "RUNNING"
    UPDATING = "UPDATING"
    DELETING = "DELETING"
    DELETED = "DELETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ClusterSpec:
    name: str
    organization_id: int
    location: str
    cloud: str
    secret_id: str
    created_by: Optional[int] = None
    version: str = ""
    node_pools: tuple[NodePoolCurrent, ...] = ()
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    status: ClusterStatus = ClusterStatus.REQUESTED
    status_message: str = ""
    ssh_secret_id: str = ""
    properties: dict[str, Any] = field(default_factory=dict, compare=False)
    domain_events: tuple[DomainEvent, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Cluster name cannot be empty")
        if not self.cloud:
            raise ValueError("Cluster cloud cannot be empty")
        names = [np.name for np in self.node_pools]
        if len(names) != len(set(names)):
            raise ValueError(f"Node pool names must be unique in cluster {self.name}")

    @property
    def aggregate_id(self) -> str:
        return str(self.id) if self.id is not None else self.name

    def node_pool(self, name: str) -> Optional[NodePoolCurrent]:
        for np in self.node_pools:
            if np.name == name:
                return np
        return None

    def with_node_pools(self, node_pools: tuple[NodePoolCurrent, ...]) -> "ClusterSpec":
        return replace(self, node_pools=tuple(node_pools))

    def with_properties(self, **values: Any) -> "ClusterSpec":
        return replace(self, properties={**self.properties, **values})

    def clear_events(self) -> "ClusterSpec":
        return replace(self, domain_events=())

    def _transition(
        self,
        allowed: tuple[ClusterStatus, ...],
        target: ClusterStatus,
        event: DomainEvent,
        message: str = "",
    ) -> "ClusterSpec":
        if self.status not in allowed:
            raise InvalidTransitionError(
                f"Cluster {self.name} cannot move from {self.status.value} "
                f"to {target.value}"
            )
        return replace(
            self,
            status=target,
            status_message=message,
            domain_events=self.domain_events + (event,),
        )

    def start_creating(self) -> "ClusterSpec":
        return self._transition(
            (ClusterStatus.REQUESTED,),
            ClusterStatus.CREATING,
            ClusterCreationStartedEvent(
                aggregate_id=self.aggregate_id,
                cloud=self.cloud,
                location=self.location,
            ),
            "Cluster creation in progress",
        )

    def mark_running(self, message: str = "Cluster is running") -> "ClusterSpec":
        return self._transition(
            (ClusterStatus.CREATING, ClusterStatus.UPDATING),
            ClusterStatus.RUNNING,
            ClusterRunningEvent(
                aggregate_id=self.aggregate_id,
                node_pool_count=len(self.node_pools),
            ),
            message,
        )

    def start_updating(self) -> "ClusterSpec":
        return self._transition(
            (ClusterStatus.RUNNING,),
            ClusterStatus.UPDATING,
            ClusterUpdateStartedEvent(aggregate_id=self.aggregate_id),
            "Cluster update in progress",
        )

    def start_deleting(self) -> "ClusterSpec":
        # Failed clusters must still be deletable.
        return self._transition(
            (ClusterStatus.RUNNING, ClusterStatus.FAILED, ClusterStatus.CREATING),
            ClusterStatus.DELETING,
            ClusterDeletionStartedEvent(aggregate_id=self.aggregate_id),
            "Cluster deletion in progress",
        )

    def mark_deleted(self) -> "ClusterSpec":
        return self._transition(
            (ClusterStatus.DELETING,),
            ClusterStatus.DELETED,
            ClusterDeletedEvent(aggregate_id=self.aggregate_id),
            "Cluster deleted",
        )

    def fail(self, message: str) -> "ClusterSpec":
        return self._transition(
            (ClusterStatus.CREATING, ClusterStatus.UPDATING, ClusterStatus.DELETING),
            ClusterStatus.FAILED,
            ClusterFailedEvent(aggregate_id=self.aggregate_id, error_message=message),
            message,
        )
