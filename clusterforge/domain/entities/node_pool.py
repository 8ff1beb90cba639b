"""
Node Pool Entities

Architectural Intent:
- Immutable representations of a node pool at each stage of reconciliation
- NodePoolDesired is what the caller asks for, NodePoolCurrent is what was
  persisted by a previous lifecycle operation, NodePoolReconciled is the
  classified work item handed to the lifecycle controller
- LiveAttributes carries what the cloud provider currently reports for a
  pool; instance type, image and spot price cannot change after creation

Domain Rules:
- Node pool names are unique within a cluster and are the join key between
  desired, current and live sets
- A reconciled pool is never both deleted and updated in place
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class NodePoolDesired:
    name: str
    instance_type: str = ""
    image: str = ""
    spot_price: str = ""
    count: int = 0
    autoscaling: bool = False
    min_count: int = 0
    max_count: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Node pool name cannot be empty")
        if self.count < 0:
            raise ValueError(f"Node pool count must be >= 0, got {self.count}")


@dataclass(frozen=True)
class NodePoolCurrent:
    """A node pool as stored after a previous reconciliation."""

    name: str
    instance_type: str = ""
    image: str = ""
    spot_price: str = ""
    count: int = 0
    autoscaling: bool = False
    min_count: int = 0
    max_count: int = 0
    id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    cluster_id: Optional[int] = None
    marked_for_deletion: bool = False


@dataclass(frozen=True)
class LiveAttributes:
    """Attributes the provider reports for an existing pool."""

    instance_type: str = ""
    image: str = ""
    spot_price: str = ""
    observed_capacity: Optional[int] = None
    version: str = ""


class PoolAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class NodePoolReconciled:
    name: str
    action: PoolAction
    instance_type: str = ""
    image: str = ""
    spot_price: str = ""
    count: int = 0
    autoscaling: bool = False
    min_count: int = 0
    max_count: int = 0
    id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    cluster_id: Optional[int] = None

    @property
    def delete(self) -> bool:
        return self.action is PoolAction.DELETE

    def to_current(self) -> NodePoolCurrent:
        """Project a surviving reconciled pool back into its stored shape."""
        if self.delete:
            raise ValueError(f"Node pool {self.name} is marked for deletion")
        return NodePoolCurrent(
            name=self.name,
            instance_type=self.instance_type,
            image=self.image,
            spot_price=self.spot_price,
            count=self.count,
            autoscaling=self.autoscaling,
            min_count=self.min_count,
            max_count=self.max_count,
            id=self.id,
            created_by=self.created_by,
            created_at=self.created_at,
            cluster_id=self.cluster_id,
        )
