"""
Node Pool Reconciler

Architectural Intent:
- Domain service computing the classified diff between the node pools a caller
  wants and the node pools that were previously persisted
- Output records are the work items the lifecycle controller turns into steps
- Pure: takes immutable snapshots, returns new values, never mutates inputs

Domain Logic:
1. Pools in both desired and current keep their stored identity and take the
   caller's mutable fields (count, autoscaling, min/max). Instance type, image
   and spot price come from the live description when there is one, since the
   provider cannot change them without recreating the pool.
2. Autoscaled existing pools prefer the live observed capacity over the
   requested count, then clamp into the new [min_count, max_count].
3. Pools only in desired are validated, get the default spot price and are
   emitted without identity.
4. Pools only in current are emitted once with delete=True, identity only.
5. Ordering: creates, then updates, then deletes; input order within a group.
"""

from __future__ import annotations
import logging
from typing import Mapping, Optional, Sequence

from clusterforge.domain.entities.node_pool import (
    LiveAttributes,
    NodePoolCurrent,
    NodePoolDesired,
    NodePoolReconciled,
    PoolAction,
)
from clusterforge.domain.exceptions import ValidationError, ValidationReason

DEFAULT_SPOT_PRICE = "0.0"


def clamp_count(count: int, min_count: int, max_count: int) -> int:
    if count < min_count:
        return min_count
    if count > max_count:
        return max_count
    return count


def _check_scaling_bounds(pool: NodePoolDesired) -> None:
    if pool.autoscaling and pool.max_count < pool.min_count:
        raise ValidationError(ValidationReason.INVALID_SCALING_BOUNDS, pool.name)


def is_unchanged(reconciled: NodePoolReconciled, current: NodePoolCurrent) -> bool:
    """True when an update-in-place pool needs no cloud call."""
    if reconciled.action is not PoolAction.UPDATE:
        return False
    return (
        reconciled.instance_type == current.instance_type
        and reconciled.image == current.image
        and reconciled.spot_price == current.spot_price
        and reconciled.count == current.count
        and reconciled.autoscaling == current.autoscaling
        and reconciled.min_count == current.min_count
        and reconciled.max_count == current.max_count
    )


class NodePoolReconciler:
    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        default_spot_price: str = DEFAULT_SPOT_PRICE,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.default_spot_price = default_spot_price

    def reconcile(
        self,
        desired: Mapping[str, NodePoolDesired],
        current: Sequence[NodePoolCurrent],
        live: Optional[Mapping[str, LiveAttributes]] = None,
        created_by: Optional[int] = None,
    ) -> list[NodePoolReconciled]:
        live = live or {}
        current_by_name: dict[str, NodePoolCurrent] = {}
        for np in current:
            if np.name in current_by_name:
                raise ValidationError(ValidationReason.DUPLICATE_NODE_POOL, np.name)
            current_by_name[np.name] = np

        creates: list[NodePoolReconciled] = []
        updates: list[NodePoolReconciled] = []
        deletes: list[NodePoolReconciled] = []

        for name, pool in desired.items():
            if pool.name != name:
                raise ValueError(f"Node pool keyed as {name!r} is named {pool.name!r}")
            _check_scaling_bounds(pool)

            existing = current_by_name.get(name)
            if existing is not None:
                updates.append(self._reconcile_existing(pool, existing, live.get(name)))
            else:
                creates.append(self._reconcile_new(pool, created_by))

        for existing in current:
            if existing.name not in desired:
                self._logger.debug("Node pool %s will be deleted", existing.name)
                deletes.append(
                    NodePoolReconciled(
                        name=existing.name,
                        action=PoolAction.DELETE,
                        id=existing.id,
                        created_by=existing.created_by,
                        created_at=existing.created_at,
                        cluster_id=existing.cluster_id,
                    )
                )

        self._logger.info(
            "Reconciled node pools: %d to create, %d to update, %d to delete",
            len(creates),
            len(updates),
            len(deletes),
        )
        return creates + updates + deletes

    def mark_all_for_deletion(
        self, current: Sequence[NodePoolCurrent]
    ) -> list[NodePoolReconciled]:
        return self.reconcile({}, current)

    def _reconcile_existing(
        self,
        pool: NodePoolDesired,
        existing: NodePoolCurrent,
        live: Optional[LiveAttributes],
    ) -> NodePoolReconciled:
        instance_type = pool.instance_type or existing.instance_type
        image = pool.image or existing.image
        spot_price = pool.spot_price or existing.spot_price
        count = pool.count

        if live is not None:
            # Not updatable after creation; reality wins over the request.
            instance_type = live.instance_type or instance_type
            image = live.image or image
            spot_price = live.spot_price or spot_price

        if pool.autoscaling:
            if live is not None and live.observed_capacity is not None:
                count = live.observed_capacity
            count = clamp_count(count, pool.min_count, pool.max_count)
            self._logger.info(
                "Desired capacity for autoscaled node pool %s will be %d",
                pool.name,
                count,
            )

        return NodePoolReconciled(
            name=pool.name,
            action=PoolAction.UPDATE,
            instance_type=instance_type,
            image=image,
            spot_price=spot_price,
            count=count,
            autoscaling=pool.autoscaling,
            min_count=pool.min_count,
            max_count=pool.max_count,
            id=existing.id,
            created_by=existing.created_by,
            created_at=existing.created_at,
            cluster_id=existing.cluster_id,
        )

    def _reconcile_new(
        self, pool: NodePoolDesired, created_by: Optional[int]
    ) -> NodePoolReconciled:
        if not pool.instance_type:
            self._logger.error("Instance type is missing for node pool %s", pool.name)
            raise ValidationError(ValidationReason.MISSING_INSTANCE_TYPE, pool.name)
        if not pool.image:
            self._logger.error("Image is missing for node pool %s", pool.name)
            raise ValidationError(ValidationReason.MISSING_IMAGE, pool.name)

        count = pool.count
        if pool.autoscaling:
            count = clamp_count(count, pool.min_count, pool.max_count)

        return NodePoolReconciled(
            name=pool.name,
            action=PoolAction.CREATE,
            instance_type=pool.instance_type,
            image=pool.image,
            spot_price=pool.spot_price or self.default_spot_price,
            count=count,
            autoscaling=pool.autoscaling,
            min_count=pool.min_count,
            max_count=pool.max_count,
            created_by=created_by,
        )
