"""
Cluster Lifecycle Use Case

Architectural Intent:
- Provider-agnostic orchestration skeleton exposing create, update, delete,
  status and details for one managed Kubernetes cluster
- Composes the node pool reconciler, the update equality checker and the
  action pipeline; provider subclasses only supply Steps and live lookups
- Holds no per-cluster mutable state: every operation builds its own
  OperationContext, so independent clusters can be operated concurrently

Persistence discipline:
- create persists once, only after a fully successful pipeline
- update persists the status before the pipeline and the achieved node pool
  set exactly once after it terminates
- delete removes the record only after full success, otherwise keeps it in
  FAILED so the delete can be retried
- a cancelled update or delete still makes its single write (FAILED, with
  the node pools achieved so far) before the cancellation propagates
"""

from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from clusterforge.application.dtos.cluster_dtos import (
    CreateClusterRequest,
    DetailsSnapshot,
    LifecycleResult,
    NodePoolDetails,
    NodePoolStatus,
    StatusSnapshot,
    UpdateClusterRequest,
)
from clusterforge.application.orchestration.action_pipeline import (
    ActionPipeline,
    PipelineResult,
    StepOutcome,
)
from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus
from clusterforge.domain.entities.node_pool import (
    LiveAttributes,
    NodePoolCurrent,
    NodePoolReconciled,
    PoolAction,
)
from clusterforge.domain.exceptions import InvalidTransitionError, NotReadyError
from clusterforge.domain.ports.cluster_repository_port import ClusterRepositoryPort
from clusterforge.domain.ports.event_bus_port import EventBusPort
from clusterforge.domain.ports.secret_store_port import SecretStorePort
from clusterforge.domain.ports.telemetry_port import TelemetryPort
from clusterforge.domain.services.node_pool_reconciler import (
    NodePoolReconciler,
    is_unchanged,
)
from clusterforge.domain.services.update_equality import is_noop
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.credentials import Credentials
from clusterforge.domain.value_objects.step import Step


class WorkKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PoolWork:
    """A node pool that needs a cloud call during an update."""

    pool: NodePoolReconciled
    kind: WorkKind


@dataclass
class OperationContext:
    """State scoped to a single lifecycle operation.

    The API endpoint is memoized for the duration of the operation only and
    is invalidated whenever a pipeline has changed the infrastructure.
    """

    cluster: ClusterSpec
    credentials: Credentials
    session: Any
    step_context: dict[str, Any] = field(default_factory=dict)
    endpoint_loader: Optional[Callable[[], Awaitable[str]]] = None
    _endpoint: Optional[str] = field(default=None, repr=False)

    async def api_endpoint(self) -> str:
        if self._endpoint is None:
            if self.endpoint_loader is None:
                raise RuntimeError("No API endpoint loader configured")
            self._endpoint = await self.endpoint_loader()
        return self._endpoint

    def invalidate_endpoint(self) -> None:
        self._endpoint = None


class ClusterLifecycleController(ABC):
    cloud: str = ""

    def __init__(
        self,
        secret_store: SecretStorePort,
        repository: ClusterRepositoryPort,
        pipeline: Optional[ActionPipeline] = None,
        reconciler: Optional[NodePoolReconciler] = None,
        event_bus: Optional[EventBusPort] = None,
        logger: Optional[logging.Logger] = None,
        telemetry: Optional[TelemetryPort] = None,
    ) -> None:
        self.secret_store = secret_store
        self.repository = repository
        self._logger = logger or logging.getLogger(__name__)
        self.pipeline = pipeline or ActionPipeline(logger=self._logger)
        self.reconciler = reconciler or NodePoolReconciler(logger=self._logger)
        self.event_bus = event_bus
        self.telemetry = telemetry

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def open_session(self, credentials: Credentials, cluster: ClusterSpec) -> Any:
        """Bind credentials and region to a provider session."""

    @abstractmethod
    def build_create_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        """Prerequisite infrastructure, cluster object, then per-pool steps."""

    @abstractmethod
    def node_pool_step(self, op: OperationContext, work: PoolWork) -> Step:
        """Step creating, updating or deleting one node pool during an update."""

    @abstractmethod
    def build_delete_steps(
        self, op: OperationContext, pools: list[NodePoolReconciled]
    ) -> list[Step]:
        """Teardown steps; the last one releases reserved resources."""

    @abstractmethod
    async def describe_live_pools(
        self, op: OperationContext, names: list[str]
    ) -> dict[str, LiveAttributes]:
        """Live descriptions of the named pools that exist in the cloud."""

    @abstractmethod
    async def describe_cluster(self, op: OperationContext) -> ClusterDescription:
        pass

    async def prepare_update(self, op: OperationContext) -> None:
        """Load whatever the update steps need; raise before any step runs."""

    def add_defaults_to_create(self, request: CreateClusterRequest) -> CreateClusterRequest:
        return request

    def add_defaults_to_update(
        self, cluster: ClusterSpec, request: UpdateClusterRequest
    ) -> UpdateClusterRequest:
        return request

    def validate_creation(
        self, request: CreateClusterRequest, pools: list[NodePoolReconciled]
    ) -> None:
        pass

    def validate_update(self, cluster: ClusterSpec, request: UpdateClusterRequest) -> None:
        """Reject provider-unsupported pool settings before any cloud call."""

    def creation_properties(self, op: OperationContext) -> dict[str, Any]:
        """Step outputs that must be stored with the cluster."""
        return {}

    def deletion_context(self, cluster: ClusterSpec) -> dict[str, Any]:
        return {}

    async def fetch_api_endpoint(self, op: OperationContext) -> str:
        return (await self.describe_cluster(op)).endpoint

    async def node_pool_versions(
        self, op: OperationContext, description: ClusterDescription
    ) -> dict[str, str]:
        return {np.name: description.version for np in op.cluster.node_pools}

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create(self, request: CreateClusterRequest) -> LifecycleResult:
        if request.cloud != self.cloud:
            raise ValueError(f"{type(self).__name__} cannot create {request.cloud} clusters")

        request = self.add_defaults_to_create(request)
        pools = self.reconciler.reconcile(
            request.node_pools, [], created_by=request.created_by
        )
        self.validate_creation(request, pools)

        cluster = request.to_cluster()
        self._logger.info(
            "Start creating %s cluster %s", self.cloud, cluster.name,
            extra={"cluster": cluster.name},
        )
        op = self._open(cluster)
        cluster = cluster.start_creating()
        op.cluster = cluster

        steps = self.build_create_steps(op, pools)
        result = await self.pipeline.execute(
            steps, rollback_on_failure=True, context=op.step_context
        )
        op.invalidate_endpoint()

        if result.succeeded:
            cluster = (
                cluster.with_node_pools(tuple(p.to_current() for p in pools))
                .with_properties(**self.creation_properties(op))
                .mark_running()
            )
            cluster = self.repository.save(cluster)
            self._logger.info(
                "%s cluster created: %s", self.cloud, cluster.name,
                extra={"cluster": cluster.name},
            )
        else:
            cluster = cluster.fail(f"Cluster creation failed: {result.error}")
            self._logger.error(
                "%s cluster create error: %s (%s)",
                self.cloud,
                result.error,
                result.summary(),
                extra={"cluster": cluster.name},
            )

        self._record("create", result)
        await self._publish(cluster)
        return LifecycleResult(cluster=cluster, pipeline=result)

    async def update(
        self, cluster: ClusterSpec, request: UpdateClusterRequest
    ) -> LifecycleResult:
        cluster = cluster.clear_events()
        if cluster.status is not ClusterStatus.RUNNING:
            raise InvalidTransitionError(
                f"Cluster {cluster.name} cannot be updated in state {cluster.status.value}"
            )

        request = self.add_defaults_to_update(cluster, request)
        self.validate_update(cluster, request)
        if is_noop(request, cluster):
            self._logger.info(
                "Update of cluster %s matches stored state, nothing to do",
                cluster.name,
                extra={"cluster": cluster.name},
            )
            return LifecycleResult(cluster=cluster, pipeline=PipelineResult.empty(), no_op=True)

        self._logger.info("Start updating cluster %s", cluster.name, extra={"cluster": cluster.name})
        op = self._open(cluster)
        await self.prepare_update(op)

        names = sorted({*request.node_pools, *(np.name for np in cluster.node_pools)})
        live = await self.describe_live_pools(op, names)
        reconciled = self.reconciler.reconcile(
            request.node_pools, cluster.node_pools, live, created_by=request.updated_by
        )

        work = self.plan_update(cluster, reconciled, live)
        steps: list[Step] = []
        step_names: dict[str, str] = {}
        for item in work:
            step = self.node_pool_step(op, item)
            steps.append(step)
            step_names[item.pool.name] = step.name

        cluster = cluster.start_updating()
        op.cluster = cluster
        if cluster.id is not None:
            self.repository.update_status(cluster.id, cluster.status, cluster.status_message)

        result = PipelineResult()
        try:
            await self.pipeline.execute(
                steps, rollback_on_failure=False, context=op.step_context, result=result
            )
        except asyncio.CancelledError:
            node_pools = self._achieved_node_pools(cluster, reconciled, step_names, result)
            cluster = cluster.with_node_pools(node_pools).fail(
                f"Update interrupted: {result.summary()}"
            )
            self._logger.warning(
                "Cluster %s update cancelled (%s)", cluster.name, result.summary(),
                extra={"cluster": cluster.name},
            )
            self.repository.save(cluster)
            self._record("update", result)
            raise
        op.invalidate_endpoint()

        node_pools = self._achieved_node_pools(cluster, reconciled, step_names, result)
        if result.succeeded:
            message = "Cluster is running"
        else:
            message = f"Update partially applied, step {result.failed_step} failed: {result.error}"
            self._logger.error(
                "Cluster %s update error: %s (%s)",
                cluster.name,
                result.error,
                result.summary(),
                extra={"cluster": cluster.name},
            )

        cluster = cluster.with_node_pools(node_pools).mark_running(message)
        cluster = self.repository.save(cluster)
        self._record("update", result)
        await self._publish(cluster)
        return LifecycleResult(cluster=cluster, pipeline=result)

    async def delete(self, cluster: ClusterSpec) -> LifecycleResult:
        cluster = cluster.clear_events()
        self._logger.info("Start deleting cluster %s", cluster.name, extra={"cluster": cluster.name})

        op = self._open(cluster)
        cluster = cluster.start_deleting()
        op.cluster = cluster
        op.step_context.update(self.deletion_context(cluster))
        if cluster.id is not None:
            self.repository.update_status(cluster.id, cluster.status, cluster.status_message)

        pools = self.reconciler.mark_all_for_deletion(cluster.node_pools)
        steps = self.build_delete_steps(op, pools)
        result = PipelineResult()
        try:
            await self.pipeline.execute(
                steps, rollback_on_failure=False, context=op.step_context, result=result
            )
        except asyncio.CancelledError:
            cluster = cluster.fail(f"Cluster deletion interrupted: {result.summary()}")
            self._logger.warning(
                "Cluster %s delete cancelled (%s)", cluster.name, result.summary(),
                extra={"cluster": cluster.name},
            )
            if cluster.id is not None:
                self.repository.update_status(cluster.id, cluster.status, cluster.status_message)
            self._record("delete", result)
            raise
        op.invalidate_endpoint()

        if result.succeeded:
            if cluster.id is not None:
                self.repository.delete(cluster)
            cluster = cluster.mark_deleted()
            self._logger.info("Cluster %s deleted", cluster.name, extra={"cluster": cluster.name})
        else:
            cluster = cluster.fail(f"Cluster deletion failed: {result.error}")
            self._logger.error(
                "Cluster %s delete error: %s (%s)",
                cluster.name,
                result.error,
                result.summary(),
                extra={"cluster": cluster.name},
            )
            if cluster.id is not None:
                self.repository.update_status(cluster.id, cluster.status, cluster.status_message)

        self._record("delete", result)
        await self._publish(cluster)
        return LifecycleResult(cluster=cluster, pipeline=result)

    async def status(self, cluster: ClusterSpec) -> StatusSnapshot:
        if cluster.status is ClusterStatus.REQUESTED:
            raise NotReadyError(cluster.name, cluster.status.value)

        return StatusSnapshot(
            name=cluster.name,
            status=cluster.status,
            status_message=cluster.status_message,
            location=cluster.location,
            cloud=cluster.cloud,
            resource_id=cluster.id,
            node_pools={np.name: self.node_pool_status(np) for np in cluster.node_pools},
            created_by=cluster.created_by,
            created_at=cluster.created_at,
        )

    async def details(self, cluster: ClusterSpec) -> DetailsSnapshot:
        self._logger.info("Start getting cluster details", extra={"cluster": cluster.name})
        op = self._open(cluster)
        description = await self.describe_cluster(op)
        if not description.active:
            raise NotReadyError(cluster.name, description.state)

        versions = await self.node_pool_versions(op, description)
        return DetailsSnapshot(
            name=cluster.name,
            id=cluster.id,
            location=cluster.location,
            master_version=description.version,
            endpoint=await op.api_endpoint(),
            node_pools={
                np.name: NodePoolDetails(
                    version=versions.get(np.name, description.version),
                    created_by=np.created_by,
                    created_at=np.created_at,
                )
                for np in cluster.node_pools
            },
            created_by=cluster.created_by,
            created_at=cluster.created_at,
        )

    async def api_endpoint(self, cluster: ClusterSpec) -> str:
        return await self._open(cluster).api_endpoint()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def node_pool_status(self, pool: NodePoolCurrent) -> NodePoolStatus:
        return NodePoolStatus(
            count=pool.count,
            instance_type=pool.instance_type,
            image=pool.image,
            autoscaling=pool.autoscaling,
            min_count=pool.min_count,
            max_count=pool.max_count,
            spot_price=pool.spot_price,
        )

    def plan_update(
        self,
        cluster: ClusterSpec,
        reconciled: list[NodePoolReconciled],
        live: Mapping[str, LiveAttributes],
    ) -> list[PoolWork]:
        work: list[PoolWork] = []
        for pool in reconciled:
            exists = pool.name in live
            if pool.action is PoolAction.DELETE:
                if exists:
                    self._logger.info("Node pool %s exists, will be deleted", pool.name)
                    work.append(PoolWork(pool, WorkKind.DELETE))
                else:
                    self._logger.warning("Node pool %s to be deleted doesn't exist", pool.name)
                continue

            if exists:
                current = cluster.node_pool(pool.name)
                if current is not None and is_unchanged(pool, current):
                    self._logger.debug("Node pool %s is unchanged", pool.name)
                    continue
                self._logger.info("Node pool %s already exists, will be updated", pool.name)
                work.append(PoolWork(pool, WorkKind.UPDATE))
            else:
                self._logger.info("Node pool %s doesn't exist, will be created", pool.name)
                work.append(PoolWork(pool, WorkKind.CREATE))
        return work

    def _achieved_node_pools(
        self,
        cluster: ClusterSpec,
        reconciled: list[NodePoolReconciled],
        step_names: Mapping[str, str],
        result: PipelineResult,
    ) -> tuple[NodePoolCurrent, ...]:
        """Node pool set the pipeline actually produced.

        Pools whose step did not succeed keep their previously stored record
        (or stay absent if they never existed) so a retry redoes only the
        outstanding work.
        """
        achieved: list[NodePoolCurrent] = []
        for pool in reconciled:
            step_name = step_names.get(pool.name)
            done = step_name is None or result.outcome_of(step_name) is StepOutcome.SUCCEEDED
            if done:
                if not pool.delete:
                    achieved.append(pool.to_current())
                continue
            previous = cluster.node_pool(pool.name)
            if previous is not None:
                achieved.append(previous)
        return tuple(achieved)

    def _open(self, cluster: ClusterSpec) -> OperationContext:
        credentials = self.secret_store.get_secret(cluster.organization_id, cluster.secret_id)
        op = OperationContext(
            cluster=cluster,
            credentials=credentials,
            session=self.open_session(credentials, cluster),
        )
        op.endpoint_loader = lambda: self.fetch_api_endpoint(op)
        return op

    def _record(self, operation: str, result: PipelineResult) -> None:
        if self.telemetry is not None:
            self.telemetry.record_operation(self.cloud, operation, result.succeeded)

    async def _publish(self, cluster: ClusterSpec) -> None:
        if self.event_bus is not None and cluster.domain_events:
            await self.event_bus.publish(list(cluster.domain_events))
