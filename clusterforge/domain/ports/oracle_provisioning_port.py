"""
Oracle Provisioning Port

Architectural Intent:
- Port interface for the OKE-style provider integration
- Same shape as the AWS port: connect() yields a session that builds Steps
  and answers live-description queries

Context keys:
- "vcn_id"      : create_vcn
- "network"     : NetworkValues, written by the controller's network step
- "placements"  : dict[pool name, Placement], read by node pool steps
- "cluster_id"  : create_cluster (provider cluster OCID)
"""

from typing import Optional, Protocol, runtime_checkable

from clusterforge.domain.entities.node_pool import LiveAttributes, NodePoolReconciled
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.network import NetworkValues
from clusterforge.domain.value_objects.step import Step


@runtime_checkable
class OracleSessionPort(Protocol):
    def create_vcn(self, vcn_name: str) -> Step: ...

    def create_cluster(self, cluster_name: str, version: str) -> Step: ...

    def create_node_pool(self, pool: NodePoolReconciled, version: str) -> Step: ...

    def update_node_pool(self, pool: NodePoolReconciled) -> Step: ...

    def delete_node_pool(self, pool_name: str) -> Step: ...

    def delete_cluster(self) -> Step: ...

    def delete_vcn(self) -> Step: ...

    async def network_values(self, vcn_id: str) -> NetworkValues: ...

    async def describe_node_pool(
        self, cluster_id: str, pool_name: str
    ) -> Optional[LiveAttributes]: ...

    async def describe_cluster(self, cluster_id: str) -> ClusterDescription: ...


@runtime_checkable
class OracleProvisioningPort(Protocol):
    def connect(self, credentials: Credentials, region: str) -> OracleSessionPort: ...
