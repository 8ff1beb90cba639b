"""
EKS Lifecycle Use Case

Architectural Intent:
- Amazon EKS flavour of the cluster lifecycle controller
- Translates the provider-agnostic operations into CloudFormation-style
  stacks, IAM resources and an EKS control plane through the AWS port
- All cloud calls stay behind AwsProvisioningPort; this module only decides
  which Steps run and in what order

Create order:
    IAM role -> VPC stack -> SSH key -> VPC config -> EKS cluster ->
    cluster settings -> IAM user -> one stack per node pool

Delete order:
    wait for dependent resources -> node pool stacks -> EKS cluster ->
    SSH key -> VPC stack -> IAM role -> IAM user
"""

from __future__ import annotations
import dataclasses
import logging
from typing import Any, Optional

from clusterforge.application.dtos.cluster_dtos import (
    CreateClusterRequest,
    UpdateClusterRequest,
)
from clusterforge.application.use_cases.cluster_lifecycle import (
    ClusterLifecycleController,
    OperationContext,
    PoolWork,
    WorkKind,
)
from clusterforge.domain.entities.cluster import ClusterSpec
from clusterforge.domain.entities.node_pool import (
    LiveAttributes,
    NodePoolDesired,
    NodePoolReconciled,
)
from clusterforge.domain.exceptions import ConfigurationError
from clusterforge.domain.ports.aws_provisioning_port import (
    AwsProvisioningPort,
    AwsSessionPort,
)
from clusterforge.domain.services.node_pool_reconciler import NodePoolReconciler
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.network import ClusterNetwork
from clusterforge.domain.value_objects.resource_names import ResourceNames
from clusterforge.domain.value_objects.step import Step
from clusterforge.infrastructure.config import EksConfig

logger = logging.getLogger(__name__)

SSH_PUBLIC_KEY = "public_key_data"
STACK_OUTPUTS = ("SecurityGroups", "VpcId", "SubnetIds")


class EksLifecycleController(ClusterLifecycleController):
    cloud = "aws"

    def __init__(
        self,
        provisioner: AwsProvisioningPort,
        secret_store,
        repository,
        config: Optional[EksConfig] = None,
        **kwargs: Any,
    ) -> None:
        self.config = config or EksConfig()
        kwargs.setdefault("logger", logger)
        kwargs.setdefault(
            "reconciler",
            NodePoolReconciler(
                logger=kwargs["logger"], default_spot_price=self.config.default_spot_price
            ),
        )
        super().__init__(secret_store, repository, **kwargs)
        self.provisioner = provisioner

    def open_session(self, credentials: Credentials, cluster: ClusterSpec) -> AwsSessionPort:
        return self.provisioner.connect(credentials, cluster.location)

    # ------------------------------------------------------------------
    # Defaults and validation
    # ------------------------------------------------------------------

    def _with_default_image(
        self, pools: dict[str, NodePoolDesired], region: str
    ) -> dict[str, NodePoolDesired]:
        image = self.config.image_for(region)
        return {
            name: pool if pool.image or not image else dataclasses.replace(pool, image=image)
            for name, pool in pools.items()
        }

    def add_defaults_to_create(self, request: CreateClusterRequest) -> CreateClusterRequest:
        return dataclasses.replace(
            request,
            version=request.version or self.config.default_version,
            node_pools=self._with_default_image(request.node_pools, request.location),
        )

    def add_defaults_to_update(
        self, cluster: ClusterSpec, request: UpdateClusterRequest
    ) -> UpdateClusterRequest:
        return dataclasses.replace(
            request, node_pools=self._with_default_image(request.node_pools, cluster.location)
        )

    def validate_creation(
        self, request: CreateClusterRequest, pools: list[NodePoolReconciled]
    ) -> None:
        if not request.ssh_secret_id:
            raise ConfigurationError(f"Cluster {request.name} needs an SSH secret")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def build_create_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        cluster = op.cluster
        names = ResourceNames(cluster.name)
        session: AwsSessionPort = op.session
        ssh_secret = self.secret_store.get_secret(cluster.organization_id, cluster.ssh_secret_id)
        public_key = ssh_secret.get(SSH_PUBLIC_KEY)
        if not public_key:
            raise ConfigurationError(
                f"Secret {cluster.ssh_secret_id} has no {SSH_PUBLIC_KEY} value"
            )

        steps = [
            session.ensure_iam_role(names.iam_role),
            session.create_vpc(names.cluster_stack),
            session.upload_ssh_key(names.ssh_key, public_key),
            session.generate_vpc_config(names.cluster_stack),
            session.create_eks_cluster(cluster.name, cluster.version),
            session.load_eks_settings(cluster.name),
            session.create_iam_user(cluster.name),
        ]
        steps.extend(
            session.create_node_pool_stack(names.node_pool_stack(pool.name), pool)
            for pool in pools
        )
        return steps

    def node_pool_step(self, op: OperationContext, work: PoolWork) -> Step:
        session: AwsSessionPort = op.session
        stack_name = ResourceNames(op.cluster.name).node_pool_stack(work.pool.name)
        if work.kind is WorkKind.CREATE:
            return session.create_node_pool_stack(stack_name, work.pool)
        if work.kind is WorkKind.UPDATE:
            return session.update_node_pool_stack(stack_name, work.pool)
        return session.delete_stack(stack_name)

    def build_delete_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        cluster = op.cluster
        names = ResourceNames(cluster.name)
        session: AwsSessionPort = op.session

        steps = [session.wait_resource_deletion(cluster.name)]
        steps.extend(session.delete_stack(names.node_pool_stack(p.name)) for p in pools)
        steps.extend([
            session.delete_cluster(cluster.name),
            session.delete_ssh_key(names.ssh_key),
            session.delete_stack(names.cluster_stack),
            session.delete_iam_role(names.iam_role),
            session.delete_user(cluster.name, cluster.properties.get("access_key_id", "")),
        ])
        return steps

    def creation_properties(self, op: OperationContext) -> dict[str, Any]:
        keys = ("api_endpoint", "certificate_authority_data", "access_key_id")
        return {k: op.step_context[k] for k in keys if k in op.step_context}

    # ------------------------------------------------------------------
    # Live state
    # ------------------------------------------------------------------

    async def prepare_update(self, op: OperationContext) -> None:
        stack_name = ResourceNames(op.cluster.name).cluster_stack
        outputs = await op.session.cluster_stack_outputs(stack_name)
        for key in STACK_OUTPUTS:
            if not outputs.get(key):
                raise ConfigurationError(f"{key} output not found on stack: {stack_name}")

        op.step_context["network"] = ClusterNetwork(
            vpc_id=outputs["VpcId"],
            subnet_ids=tuple(s for s in outputs["SubnetIds"].split(",") if s),
            security_group_id=outputs["SecurityGroups"],
        )

    async def describe_live_pools(
        self, op: OperationContext, names: list[str]
    ) -> dict[str, LiveAttributes]:
        resource_names = ResourceNames(op.cluster.name)
        live: dict[str, LiveAttributes] = {}
        for name in names:
            attributes = await op.session.describe_node_pool(resource_names.node_pool_stack(name))
            if attributes is not None:
                live[name] = attributes
        return live

    async def describe_cluster(self, op: OperationContext) -> ClusterDescription:
        return await op.session.describe_cluster(op.cluster.name)

    async def fetch_api_endpoint(self, op: OperationContext) -> str:
        description = await self.describe_cluster(op)
        return description.endpoint or op.cluster.properties.get("api_endpoint", "")
