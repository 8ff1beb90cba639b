"""
Oracle OKE Provisioning Adapter

Architectural Intent:
- Implements OracleProvisioningPort for Oracle Container Engine clusters
- Simulates the OCI Python SDK call patterns (VirtualNetworkClient,
  ContainerEngineClient) without importing the SDK
- When the real oci library is available, replace SimulatedOracleCloud with
  oci clients built from the session config; the Step factories remain stable

Design Decisions:
- Resources are kept in dicts shaped like the SDK's model objects
  (snake_case attributes, lifecycle_state, OCIDs)
- The preconfigured VCN carries its load balancer and worker subnets; their
  number is configurable so tests can provoke placement errors
- Deleting something that is already gone succeeds
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from clusterforge.domain.entities.node_pool import LiveAttributes, NodePoolReconciled
from clusterforge.domain.exceptions import ConfigurationError
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.network import NetworkValues, Placement
from clusterforge.domain.value_objects.step import Step, StepContext

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIALS = ("user_ocid", "tenancy_ocid", "api_key_fingerprint", "api_key")


class SimulatedOciError(Exception):
    """Mirrors oci.exceptions.ServiceError: HTTP status, code and message."""

    def __init__(self, status: int, code: str, message: str) -> None:
        self.status = status
        self.code = code
        super().__init__(f"{status} {code}: {message}")


def _ocid(kind: str, region: str) -> str:
    return f"ocid1.{kind}.oc1.{region}.{uuid.uuid4().hex}"


class SimulatedOracleCloud:
    """
    In-memory OCI tenancy.

    `calls` is an audit log of "operation:target" strings in call order.
    """

    def __init__(
        self,
        lb_subnet_count: int = 2,
        worker_subnet_count: int = 3,
        latency: float = 0.0,
    ) -> None:
        self.lb_subnet_count = lb_subnet_count
        self.worker_subnet_count = worker_subnet_count
        self.latency = latency
        self.vcns: dict[str, dict] = {}
        self.clusters: dict[str, dict] = {}
        self.node_pools: dict[str, dict] = {}
        self.calls: list[str] = []
        self._faults: dict[tuple[str, str], Exception] = {}

    def fail_on(self, operation: str, target: str = "*", error: Optional[Exception] = None) -> None:
        self._faults[(operation, target)] = error or SimulatedOciError(
            500, "InternalServerError", f"injected failure in {operation} for {target}"
        )

    def clear_faults(self) -> None:
        self._faults.clear()

    async def _call(self, operation: str, target: str) -> None:
        self.calls.append(f"{operation}:{target}")
        logger.debug("OCI %s (%s)", operation, target)
        await asyncio.sleep(self.latency)
        fault = self._faults.get((operation, target)) or self._faults.get((operation, "*"))
        if fault is not None:
            raise fault

    # -- Virtual network ---------------------------------------------------------

    async def create_vcn(self, display_name: str, region: str) -> dict:
        await self._call("create_vcn", display_name)
        vcn = {
            "id": _ocid("vcn", region),
            "display_name": display_name,
            "cidr_block": "10.0.0.0/16",
            "lifecycle_state": "AVAILABLE",
            "lb_subnet_ids": [_ocid("subnet", region) for _ in range(self.lb_subnet_count)],
            "worker_subnet_ids": [
                _ocid("subnet", region) for _ in range(self.worker_subnet_count)
            ],
        }
        self.vcns[vcn["id"]] = vcn
        return vcn

    async def get_vcn(self, vcn_id: str) -> Optional[dict]:
        await self._call("get_vcn", vcn_id)
        return self.vcns.get(vcn_id)

    async def delete_vcn(self, vcn_id: str) -> bool:
        await self._call("delete_vcn", vcn_id)
        in_use = [c for c in self.clusters.values() if c["vcn_id"] == vcn_id]
        if in_use:
            raise SimulatedOciError(409, "Conflict", f"VCN {vcn_id} still has clusters")
        return self.vcns.pop(vcn_id, None) is not None

    # -- Container engine ----------------------------------------------------------

    async def create_cluster(
        self, name: str, vcn_id: str, version: str, lb_subnet_ids: list[str], region: str
    ) -> dict:
        await self._call("create_cluster", name)
        if vcn_id not in self.vcns:
            raise SimulatedOciError(404, "NotAuthorizedOrNotFound", f"VCN {vcn_id} not found")
        cluster_id = _ocid("cluster", region)
        cluster = {
            "id": cluster_id,
            "name": name,
            "vcn_id": vcn_id,
            "kubernetes_version": version,
            "lifecycle_state": "ACTIVE",
            "options": {"service_lb_subnet_ids": list(lb_subnet_ids)},
            "endpoints": {"kubernetes": f"{uuid.uuid4().hex[:12]}.{region}.clusters.oci.oraclecloud.com:6443"},
        }
        self.clusters[cluster_id] = cluster
        return cluster

    async def get_cluster(self, cluster_id: str) -> Optional[dict]:
        await self._call("get_cluster", cluster_id)
        return self.clusters.get(cluster_id)

    async def delete_cluster(self, cluster_id: str) -> bool:
        await self._call("delete_cluster", cluster_id)
        if any(np["cluster_id"] == cluster_id for np in self.node_pools.values()):
            raise SimulatedOciError(409, "Conflict", f"Cluster {cluster_id} still has node pools")
        return self.clusters.pop(cluster_id, None) is not None

    async def create_node_pool(self, details: dict[str, Any], region: str) -> dict:
        await self._call("create_node_pool", details["name"])
        if details["cluster_id"] not in self.clusters:
            raise SimulatedOciError(
                404, "NotAuthorizedOrNotFound", f"Cluster {details['cluster_id']} not found"
            )
        if self.find_node_pool(details["cluster_id"], details["name"]) is not None:
            raise SimulatedOciError(409, "Conflict", f"Node pool {details['name']} exists")
        node_pool = dict(details, id=_ocid("nodepool", region), lifecycle_state="ACTIVE")
        self.node_pools[node_pool["id"]] = node_pool
        return node_pool

    async def update_node_pool(self, node_pool_id: str, details: dict[str, Any]) -> dict:
        node_pool = self.node_pools.get(node_pool_id)
        await self._call("update_node_pool", node_pool["name"] if node_pool else node_pool_id)
        if node_pool is None:
            raise SimulatedOciError(404, "NotAuthorizedOrNotFound", f"Node pool {node_pool_id} not found")
        node_pool.update(details)
        return node_pool

    async def delete_node_pool(self, node_pool_id: str) -> bool:
        node_pool = self.node_pools.get(node_pool_id)
        await self._call("delete_node_pool", node_pool["name"] if node_pool else node_pool_id)
        return self.node_pools.pop(node_pool_id, None) is not None

    async def list_node_pools(self, cluster_id: str, name: str) -> list[dict]:
        await self._call("list_node_pools", name)
        node_pool = self.find_node_pool(cluster_id, name)
        return [node_pool] if node_pool else []

    def find_node_pool(self, cluster_id: str, name: str) -> Optional[dict]:
        for node_pool in self.node_pools.values():
            if node_pool["cluster_id"] == cluster_id and node_pool["name"] == name:
                return node_pool
        return None


class OracleSession:
    def __init__(self, cloud: SimulatedOracleCloud, region: str, tenancy: str) -> None:
        self.cloud = cloud
        self.region = region
        self.tenancy = tenancy

    def create_vcn(self, vcn_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            vcn = await self.cloud.create_vcn(vcn_name, self.region)
            ctx["vcn_id"] = vcn["id"]

        async def compensate(ctx: StepContext) -> None:
            if ctx.get("vcn_id"):
                await self.cloud.delete_vcn(ctx["vcn_id"])

        return Step(name=f"create-vcn-{vcn_name}", execute=execute, compensate=compensate)

    def create_cluster(self, cluster_name: str, version: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            network: NetworkValues = ctx["network"]
            cluster = await self.cloud.create_cluster(
                cluster_name, ctx["vcn_id"], version, list(network.lb_subnet_ids), self.region
            )
            ctx["cluster_id"] = cluster["id"]

        async def compensate(ctx: StepContext) -> None:
            if ctx.get("cluster_id"):
                await self.cloud.delete_cluster(ctx["cluster_id"])

        return Step(name=f"create-oke-cluster-{cluster_name}", execute=execute, compensate=compensate)

    def create_node_pool(self, pool: NodePoolReconciled, version: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            placement: Placement = ctx["placements"][pool.name]
            await self.cloud.create_node_pool(
                {
                    "name": pool.name,
                    "cluster_id": ctx["cluster_id"],
                    "compartment_id": self.tenancy,
                    "kubernetes_version": version,
                    "node_shape": pool.instance_type,
                    "node_image_name": pool.image,
                    "quantity_per_subnet": placement.quantity_per_subnet,
                    "subnet_ids": list(placement.subnet_ids),
                },
                self.region,
            )

        async def compensate(ctx: StepContext) -> None:
            node_pool = self.cloud.find_node_pool(ctx.get("cluster_id", ""), pool.name)
            if node_pool is not None:
                await self.cloud.delete_node_pool(node_pool["id"])

        return Step(name=f"create-node-pool-{pool.name}", execute=execute, compensate=compensate)

    def update_node_pool(self, pool: NodePoolReconciled) -> Step:
        previous: dict[str, Any] = {}

        async def execute(ctx: StepContext) -> None:
            node_pool = self.cloud.find_node_pool(ctx["cluster_id"], pool.name)
            if node_pool is None:
                raise SimulatedOciError(404, "NotAuthorizedOrNotFound", f"Node pool {pool.name} not found")
            placement: Placement = ctx["placements"][pool.name]
            previous.update(
                id=node_pool["id"],
                quantity_per_subnet=node_pool["quantity_per_subnet"],
                subnet_ids=list(node_pool["subnet_ids"]),
            )
            await self.cloud.update_node_pool(
                node_pool["id"],
                {
                    "quantity_per_subnet": placement.quantity_per_subnet,
                    "subnet_ids": list(placement.subnet_ids),
                },
            )

        async def compensate(ctx: StepContext) -> None:
            if "id" in previous:
                node_pool_id = previous.pop("id")
                await self.cloud.update_node_pool(node_pool_id, previous)

        return Step(name=f"update-node-pool-{pool.name}", execute=execute, compensate=compensate)

    def delete_node_pool(self, pool_name: str) -> Step:
        async def execute(ctx: StepContext) -> None:
            node_pool = self.cloud.find_node_pool(ctx.get("cluster_id", ""), pool_name)
            if node_pool is None:
                logger.info("Node pool %s already deleted", pool_name)
                return
            await self.cloud.delete_node_pool(node_pool["id"])

        return Step(name=f"delete-node-pool-{pool_name}", execute=execute, destructive=True)

    def delete_cluster(self) -> Step:
        async def execute(ctx: StepContext) -> None:
            cluster_id = ctx.get("cluster_id")
            if not cluster_id or not await self.cloud.delete_cluster(cluster_id):
                logger.info("OKE cluster %s already deleted", cluster_id)

        return Step(name="delete-oke-cluster", execute=execute, destructive=True)

    def delete_vcn(self) -> Step:
        async def execute(ctx: StepContext) -> None:
            vcn_id = ctx.get("vcn_id")
            if not vcn_id or not await self.cloud.delete_vcn(vcn_id):
                logger.info("VCN %s already deleted", vcn_id)

        return Step(name="delete-vcn", execute=execute, destructive=True)

    async def network_values(self, vcn_id: str) -> NetworkValues:
        vcn = await self.cloud.get_vcn(vcn_id)
        if vcn is None:
            raise ConfigurationError(f"VCN {vcn_id} not found")
        return NetworkValues(
            vcn_id=vcn_id,
            lb_subnet_ids=tuple(vcn["lb_subnet_ids"]),
            worker_subnet_ids=tuple(vcn["worker_subnet_ids"]),
        )

    async def describe_node_pool(
        self, cluster_id: str, pool_name: str
    ) -> Optional[LiveAttributes]:
        found = await self.cloud.list_node_pools(cluster_id, pool_name)
        if not found:
            return None
        node_pool = found[0]
        return LiveAttributes(
            instance_type=node_pool["node_shape"],
            image=node_pool["node_image_name"],
            observed_capacity=node_pool["quantity_per_subnet"] * len(node_pool["subnet_ids"]),
            version=node_pool["kubernetes_version"],
        )

    async def describe_cluster(self, cluster_id: str) -> ClusterDescription:
        cluster = await self.cloud.get_cluster(cluster_id) if cluster_id else None
        if cluster is None:
            return ClusterDescription(name=cluster_id, state="NOT_FOUND", active=False)
        return ClusterDescription(
            name=cluster["name"],
            state=cluster["lifecycle_state"],
            active=cluster["lifecycle_state"] == "ACTIVE",
            version=cluster["kubernetes_version"],
            endpoint=cluster["endpoints"]["kubernetes"],
        )


class OracleAdapter:
    """
    Oracle provisioning adapter.

    Configuration parameters
    ------------------------
    cloud : SimulatedOracleCloud | None
        Backend the sessions talk to. A fresh simulated tenancy when omitted.
    """

    def __init__(self, cloud: Optional[SimulatedOracleCloud] = None) -> None:
        self.cloud = cloud or SimulatedOracleCloud()

    def connect(self, credentials: Credentials, region: str) -> OracleSession:
        missing = [key for key in REQUIRED_CREDENTIALS if not credentials.get(key)]
        if missing:
            raise ConfigurationError(
                f"Secret {credentials.secret_id} is missing {', '.join(missing)}"
            )
        logger.debug("OCI session opened (region=%s)", region)
        return OracleSession(self.cloud, region, credentials.get("tenancy_ocid"))
