"""
Domain Services Package

Architectural Intent:
- Contains pure domain services: node pool reconciliation, subnet quantity
  distribution and update no-op detection
"""

from clusterforge.domain.services.node_pool_reconciler import (
    NodePoolReconciler,
    DEFAULT_SPOT_PRICE,
    clamp_count,
    is_unchanged,
)
from clusterforge.domain.services.quantity_distributor import distribute, MIN_SUBNETS
from clusterforge.domain.services.update_equality import is_noop

__all__ = [
    "NodePoolReconciler",
    "DEFAULT_SPOT_PRICE",
    "clamp_count",
    "is_unchanged",
    "distribute",
    "MIN_SUBNETS",
    "is_noop",
]
