"""
OKE Lifecycle Use Case

Architectural Intent:
- Oracle Container Engine flavour of the cluster lifecycle controller
- Builds a preconfigured VCN, the cluster and its node pools through the
  Oracle port
- Spreads each node pool's instances over the VCN worker subnets with the
  quantity distributor

Network placement:
- The VCN must expose exactly two load balancer subnets
- Every node pool must be placeable across at least three worker subnets;
  otherwise the operation stops with a ConfigurationError
"""

from __future__ import annotations
import dataclasses
import logging
from typing import Any, Iterable, Optional

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
from clusterforge.domain.ports.oracle_provisioning_port import (
    OracleProvisioningPort,
    OracleSessionPort,
)
from clusterforge.domain.services.quantity_distributor import distribute
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.network import NetworkValues, Placement
from clusterforge.domain.value_objects.resource_names import ResourceNames
from clusterforge.domain.value_objects.step import Step, StepContext
from clusterforge.infrastructure.config import OkeConfig

logger = logging.getLogger(__name__)

LB_SUBNET_COUNT = 2
NETWORK_STEP = "populate-network-values"


def place_node_pools(
    pools: Iterable[NodePoolReconciled], network: NetworkValues
) -> dict[str, Placement]:
    """Compute the subnet placement of every surviving pool.

    Raises ConfigurationError when the VCN does not have the expected load
    balancer subnets or a pool cannot be spread over the worker subnets.
    During create this runs as a pipeline step, since the subnets only exist
    once the VCN step has built them; a failure there rolls the VCN back.
    """
    if len(network.lb_subnet_ids) != LB_SUBNET_COUNT:
        raise ConfigurationError(
            f"VCN {network.vcn_id} must have {LB_SUBNET_COUNT} load balancer subnets, "
            f"found {len(network.lb_subnet_ids)}"
        )

    placements: dict[str, Placement] = {}
    for pool in pools:
        if pool.delete:
            continue
        per_subnet, subnets = distribute(pool.count, network.worker_subnet_ids)
        if per_subnet == 0:
            raise ConfigurationError(
                f"Cannot place {pool.count} node(s) of pool {pool.name} over "
                f"{len(network.worker_subnet_ids)} worker subnet(s)"
            )
        placements[pool.name] = Placement(per_subnet, tuple(subnets))
    return placements


class OkeLifecycleController(ClusterLifecycleController):
    cloud = "oracle"

    def __init__(
        self,
        provisioner: OracleProvisioningPort,
        secret_store,
        repository,
        config: Optional[OkeConfig] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("logger", logger)
        super().__init__(secret_store, repository, **kwargs)
        self.provisioner = provisioner
        self.config = config or OkeConfig()

    def open_session(self, credentials: Credentials, cluster: ClusterSpec) -> OracleSessionPort:
        return self.provisioner.connect(credentials, cluster.location)

    # ------------------------------------------------------------------
    # Defaults and validation
    # ------------------------------------------------------------------

    def _with_defaults(self, pools: dict[str, NodePoolDesired]) -> dict[str, NodePoolDesired]:
        result = {}
        for name, pool in pools.items():
            result[name] = dataclasses.replace(
                pool,
                image=pool.image or self.config.default_image,
                instance_type=pool.instance_type or self.config.default_shape,
            )
        return result

    def add_defaults_to_create(self, request: CreateClusterRequest) -> CreateClusterRequest:
        return dataclasses.replace(
            request,
            version=request.version or self.config.default_version,
            node_pools=self._with_defaults(request.node_pools),
        )

    def add_defaults_to_update(
        self, cluster: ClusterSpec, request: UpdateClusterRequest
    ) -> UpdateClusterRequest:
        return dataclasses.replace(request, node_pools=self._with_defaults(request.node_pools))

    def validate_creation(
        self, request: CreateClusterRequest, pools: list[NodePoolReconciled]
    ) -> None:
        self._check_pools(pools)

    def validate_update(self, cluster: ClusterSpec, request: UpdateClusterRequest) -> None:
        self._check_pools(request.node_pools.values())

    def _check_pools(self, pools: Iterable[NodePoolDesired | NodePoolReconciled]) -> None:
        for pool in pools:
            if pool.autoscaling:
                raise ConfigurationError(
                    f"Node pool {pool.name}: autoscaling is not supported on oracle"
                )
            if pool.count <= 0:
                raise ConfigurationError(f"Node pool {pool.name} needs at least one node")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _network_step(self, op: OperationContext, pools: list[NodePoolReconciled]) -> Step:
        session: OracleSessionPort = op.session

        async def populate(ctx: StepContext) -> None:
            network = await session.network_values(ctx["vcn_id"])
            ctx["network"] = network
            ctx["placements"] = place_node_pools(pools, network)
            self._logger.debug(
                "Network values for VCN %s: %s", network.vcn_id, ctx["placements"]
            )

        return Step(name=NETWORK_STEP, execute=populate)

    def build_create_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        cluster = op.cluster
        session: OracleSessionPort = op.session
        steps = [
            session.create_vcn(ResourceNames(cluster.name).vcn),
            self._network_step(op, pools),
            session.create_cluster(cluster.name, cluster.version),
        ]
        steps.extend(session.create_node_pool(pool, cluster.version) for pool in pools)
        return steps

    def node_pool_step(self, op: OperationContext, work: PoolWork) -> Step:
        session: OracleSessionPort = op.session
        if work.kind is WorkKind.DELETE:
            return session.delete_node_pool(work.pool.name)

        placements = op.step_context.setdefault("placements", {})
        placements.update(place_node_pools([work.pool], op.step_context["network"]))
        if work.kind is WorkKind.CREATE:
            return session.create_node_pool(work.pool, op.cluster.version)
        return session.update_node_pool(work.pool)

    def build_delete_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        session: OracleSessionPort = op.session
        steps = [session.delete_node_pool(pool.name) for pool in pools]
        steps.append(session.delete_cluster())
        steps.append(session.delete_vcn())
        return steps

    def creation_properties(self, op: OperationContext) -> dict[str, Any]:
        return {k: op.step_context[k] for k in ("vcn_id", "cluster_id") if k in op.step_context}

    def deletion_context(self, cluster: ClusterSpec) -> dict[str, Any]:
        return {
            k: cluster.properties[k] for k in ("vcn_id", "cluster_id") if k in cluster.properties
        }

    # ------------------------------------------------------------------
    # Live state
    # ------------------------------------------------------------------

    async def prepare_update(self, op: OperationContext) -> None:
        properties = op.cluster.properties
        vcn_id = properties.get("vcn_id")
        if not vcn_id:
            raise ConfigurationError(f"Cluster {op.cluster.name} has no VCN recorded")

        network = await op.session.network_values(vcn_id)
        if len(network.lb_subnet_ids) != LB_SUBNET_COUNT:
            raise ConfigurationError(
                f"VCN {vcn_id} must have {LB_SUBNET_COUNT} load balancer subnets, "
                f"found {len(network.lb_subnet_ids)}"
            )
        op.step_context.update(
            vcn_id=vcn_id,
            cluster_id=properties.get("cluster_id", ""),
            network=network,
            placements={},
        )

    async def describe_live_pools(
        self, op: OperationContext, names: list[str]
    ) -> dict[str, LiveAttributes]:
        cluster_id = op.cluster.properties.get("cluster_id", "")
        live: dict[str, LiveAttributes] = {}
        for name in names:
            attributes = await op.session.describe_node_pool(cluster_id, name)
            if attributes is not None:
                live[name] = attributes
        return live

    async def describe_cluster(self, op: OperationContext) -> ClusterDescription:
        return await op.session.describe_cluster(op.cluster.properties.get("cluster_id", ""))

    async def fetch_api_endpoint(self, op: OperationContext) -> str:
        endpoint = (await self.describe_cluster(op)).endpoint
        if endpoint and not endpoint.startswith("https://"):
            endpoint = f"https://{endpoint}"
        return endpoint

    async def node_pool_versions(
        self, op: OperationContext, description: ClusterDescription
    ) -> dict[str, str]:
        live = await self.describe_live_pools(op, [np.name for np in op.cluster.node_pools])
        return {
            name: attributes.version or description.version
            for name, attributes in live.items()
        }
