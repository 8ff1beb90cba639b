"""
Update Equality Checker

Architectural Intent:
- Decides whether an update request is a no-op against the stored cluster so
  the lifecycle controller can skip the pipeline entirely
- The stored cluster is projected into the request's node pool shape,
  ignoring server-managed identity fields and timestamps, then compared
  structurally
- Advisory only: a False answer never implies what has to change
"""

from __future__ import annotations
import logging
from typing import Mapping, Protocol

from clusterforge.domain.entities.cluster import ClusterSpec
from clusterforge.domain.entities.node_pool import NodePoolCurrent, NodePoolDesired
from clusterforge.domain.exceptions import ValidationError, ValidationReason

logger = logging.getLogger(__name__)


class UpdateRequestLike(Protocol):
    cloud: str
    node_pools: Mapping[str, NodePoolDesired]


def project_node_pool(pool: NodePoolCurrent) -> NodePoolDesired:
    return NodePoolDesired(
        name=pool.name,
        instance_type=pool.instance_type,
        image=pool.image,
        spot_price=pool.spot_price,
        count=pool.count,
        autoscaling=pool.autoscaling,
        min_count=pool.min_count,
        max_count=pool.max_count,
    )


def project_stored(stored: ClusterSpec) -> dict[str, NodePoolDesired]:
    return {np.name: project_node_pool(np) for np in stored.node_pools}


def is_noop(requested: UpdateRequestLike, stored: ClusterSpec) -> bool:
    """Return True only if the request is structurally equal to stored state."""
    if requested.cloud != stored.cloud:
        raise ValidationError(ValidationReason.CLOUD_MISMATCH)

    logger.info("Check stored & updated cluster %s equals", stored.name)
    return dict(requested.node_pools) == project_stored(stored)
