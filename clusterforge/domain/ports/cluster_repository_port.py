"""
Cluster Repository Port

Architectural Intent:
- Port interface for persisting cluster and node pool records
- save() writes the cluster and its complete node pool set in one atomic
  unit; lifecycle controllers call it exactly once after a pipeline ends
"""

from abc import ABC, abstractmethod

from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus


class ClusterRepositoryPort(ABC):
    @abstractmethod
    def load(self, cluster_id: int) -> ClusterSpec:
        """
        Loads a cluster with its node pools. Raises ClusterNotFoundError.
        """
        pass

    @abstractmethod
    def save(self, cluster: ClusterSpec) -> ClusterSpec:
        """
        Persists the cluster and replaces its node pool set atomically.
        Returns the cluster with storage-assigned ids and timestamps.
        """
        pass

    @abstractmethod
    def delete(self, cluster: ClusterSpec) -> None:
        pass

    @abstractmethod
    def update_status(
        self, cluster_id: int, status: ClusterStatus, message: str = ""
    ) -> None:
        pass
