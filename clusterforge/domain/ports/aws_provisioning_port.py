"""
AWS Provisioning Port

Architectural Intent:
- Port interface for the EKS-style provider integration
- connect() binds credentials and region into a session; the session hands
  out Step instances and answers live-description queries
- The lifecycle controller treats every Step as a black box

Context keys written by the steps:
- "role_arn"     : ensure_iam_role
- "network"      : create_vpc (ClusterNetwork)
- "api_endpoint" : load_eks_settings
- "certificate_authority_data" : load_eks_settings
- "node_instance_roles" : create/update node pool stack (list, appended)
- "access_key_id" : create_iam_user
"""

from typing import Optional, Protocol, runtime_checkable

from clusterforge.domain.entities.node_pool import LiveAttributes, NodePoolReconciled
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.step import Step


@runtime_checkable
class AwsSessionPort(Protocol):
    def ensure_iam_role(self, role_name: str) -> Step: ...

    def create_vpc(self, stack_name: str) -> Step: ...

    def upload_ssh_key(self, key_name: str, public_key: str) -> Step: ...

    def generate_vpc_config(self, stack_name: str) -> Step: ...

    def create_eks_cluster(self, cluster_name: str, version: str) -> Step: ...

    def load_eks_settings(self, cluster_name: str) -> Step: ...

    def create_iam_user(self, user_name: str) -> Step: ...

    def create_node_pool_stack(self, stack_name: str, pool: NodePoolReconciled) -> Step: ...

    def update_node_pool_stack(self, stack_name: str, pool: NodePoolReconciled) -> Step: ...

    def delete_stack(self, stack_name: str) -> Step: ...

    def wait_resource_deletion(self, cluster_name: str) -> Step: ...

    def delete_cluster(self, cluster_name: str) -> Step: ...

    def delete_ssh_key(self, key_name: str) -> Step: ...

    def delete_iam_role(self, role_name: str) -> Step: ...

    def delete_user(self, user_name: str, access_key_id: str = "") -> Step: ...

    async def cluster_stack_outputs(self, stack_name: str) -> dict[str, str]:
        """Return the outputs of the cluster stack; empty if it does not exist."""
        ...

    async def describe_node_pool(self, stack_name: str) -> Optional[LiveAttributes]:
        """Return stack parameters and ASG capacity, or None if absent."""
        ...

    async def describe_cluster(self, cluster_name: str) -> ClusterDescription: ...


@runtime_checkable
class AwsProvisioningPort(Protocol):
    def connect(self, credentials: Credentials, region: str) -> AwsSessionPort: ...
