"""
Cluster DTOs

Architectural Intent:
- Data Transfer Objects for the lifecycle controller boundaries
- Input validation at the application boundary
- Decouples the caller-facing shapes from the cluster aggregate
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from clusterforge.application.orchestration.action_pipeline import PipelineResult
from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus
from clusterforge.domain.entities.node_pool import NodePoolDesired


def _check_pool_keys(node_pools: dict[str, NodePoolDesired]) -> None:
    for key, pool in node_pools.items():
        if key != pool.name:
            raise ValueError(f"Node pool keyed as {key!r} is named {pool.name!r}")


@dataclass(frozen=True)
class CreateClusterRequest:
    name: str
    location: str
    cloud: str
    secret_id: str
    organization_id: int
    node_pools: dict[str, NodePoolDesired]
    created_by: Optional[int] = None
    version: str = ""
    ssh_secret_id: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name cannot be empty")
        if not self.location:
            raise ValueError("location cannot be empty")
        if not self.cloud:
            raise ValueError("cloud cannot be empty")
        if not self.secret_id:
            raise ValueError("secret_id cannot be empty")
        if not self.node_pools:
            raise ValueError("node_pools cannot be empty")
        _check_pool_keys(self.node_pools)

    def to_cluster(self) -> ClusterSpec:
        return ClusterSpec(
            name=self.name,
            organization_id=self.organization_id,
            location=self.location,
            cloud=self.cloud,
            secret_id=self.secret_id,
            created_by=self.created_by,
            version=self.version,
            ssh_secret_id=self.ssh_secret_id,
        )


@dataclass(frozen=True)
class UpdateClusterRequest:
    cloud: str
    node_pools: dict[str, NodePoolDesired]
    updated_by: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.cloud:
            raise ValueError("cloud cannot be empty")
        _check_pool_keys(self.node_pools)


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of one lifecycle operation.

    Attributes:
        cluster: Cluster aggregate after the operation, including the domain
                 events it raised.
        pipeline: Ledger of the pipeline run; empty when no pipeline ran.
        no_op: True when an update matched stored state and nothing ran.
    """

    cluster: ClusterSpec
    pipeline: PipelineResult
    no_op: bool = False

    @property
    def succeeded(self) -> bool:
        return self.pipeline.succeeded


@dataclass(frozen=True)
class NodePoolStatus:
    count: int
    instance_type: str
    image: str
    autoscaling: bool = False
    min_count: int = 0
    max_count: int = 0
    spot_price: str = ""


@dataclass(frozen=True)
class StatusSnapshot:
    name: str
    status: ClusterStatus
    status_message: str
    location: str
    cloud: str
    resource_id: Optional[int]
    node_pools: dict[str, NodePoolStatus] = field(default_factory=dict)
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class NodePoolDetails:
    version: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DetailsSnapshot:
    name: str
    id: Optional[int]
    location: str
    master_version: str
    endpoint: str
    node_pools: dict[str, NodePoolDetails] = field(default_factory=dict)
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
