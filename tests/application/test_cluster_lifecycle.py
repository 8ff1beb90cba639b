"""
Cluster Lifecycle Tests

Architectural Intent:
- Tests for the EKS and OKE lifecycle controllers
- Provider ports are MagicMocks whose factories hand out recording Steps;
  the repository is a MagicMock with the port's spec
- Verifies step ordering, validation before side effects and the
  persistence discipline of every operation
"""

import asyncio
import pytest
from dataclasses import replace
from datetime import datetime, UTC
from unittest.mock import AsyncMock, MagicMock

from clusterforge.application.dtos.cluster_dtos import (
    CreateClusterRequest,
    UpdateClusterRequest,
)
from clusterforge.application.use_cases.eks_lifecycle import EksLifecycleController
from clusterforge.application.use_cases.oke_lifecycle import (
    NETWORK_STEP,
    OkeLifecycleController,
    place_node_pools,
)
from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus
from clusterforge.domain.entities.node_pool import (
    LiveAttributes,
    NodePoolCurrent,
    NodePoolDesired,
    NodePoolReconciled,
    PoolAction,
)
from clusterforge.domain.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    NotReadyError,
    ValidationError,
    ValidationReason,
)
from clusterforge.domain.ports.cluster_repository_port import ClusterRepositoryPort
from clusterforge.domain.value_objects.cluster_description import ClusterDescription
from clusterforge.domain.value_objects.network import NetworkValues
from clusterforge.domain.value_objects.step import Step
from clusterforge.infrastructure.config import EksConfig
from clusterforge.infrastructure.secrets.memory_secret_store import InMemorySecretStore

AWS_FACTORIES = (
    "ensure_iam_role", "create_vpc", "upload_ssh_key", "generate_vpc_config",
    "create_eks_cluster", "load_eks_settings", "create_iam_user",
    "create_node_pool_stack", "update_node_pool_stack", "delete_stack",
    "wait_resource_deletion", "delete_cluster", "delete_ssh_key",
    "delete_iam_role", "delete_user",
)
ORACLE_FACTORIES = (
    "create_vcn", "create_cluster", "create_node_pool", "update_node_pool",
    "delete_node_pool", "delete_cluster", "delete_vcn",
)
STEP_OUTPUTS = {
    "load_eks_settings": {"api_endpoint": "https://eks.example", "certificate_authority_data": "ca"},
    "create_iam_user": {"access_key_id": "AKIA1"},
    "create_vcn": {"vcn_id": "vcn-1"},
    "create_cluster": {"cluster_id": "oke-1"},
}


def fake_session(factories, log, failing=(), hanging=(), started=None):
    """A session whose Step factories record "<factory>:<first arg>" labels.

    Steps labelled in ``hanging`` set ``started`` and then block until the
    surrounding task is cancelled.
    """
    session = MagicMock()

    def factory(kind):
        def make(*args, **kwargs):
            target = args[0] if args else ""
            target = getattr(target, "name", target)
            label = f"{kind}:{target}" if target else kind

            async def execute(ctx):
                log.append(label)
                if label in hanging:
                    started.set()
                    await asyncio.sleep(10)
                if label in failing:
                    raise RuntimeError(f"{label} failed")
                ctx.update(STEP_OUTPUTS.get(kind, {}))

            async def compensate(ctx):
                log.append(f"undo:{label}")

            return Step(name=label, execute=execute, compensate=compensate,
                        destructive=kind.startswith("delete"))
        return make

    for kind in factories:
        getattr(session, kind).side_effect = factory(kind)
    return session


@pytest.fixture
def store():
    s = InMemorySecretStore()
    s.put_secret(1, "creds", {"AWS_ACCESS_KEY_ID": "a", "AWS_SECRET_ACCESS_KEY": "b"})
    s.put_secret(1, "ssh", {"public_key_data": "ssh-rsa AAAA"})
    return s


@pytest.fixture
def repo():
    repository = MagicMock(spec=ClusterRepositoryPort)
    repository.save.side_effect = lambda c: c if c.id is not None else replace(c, id=1)
    return repository


@pytest.fixture
def log():
    return []


@pytest.fixture
def aws_session(log):
    session = fake_session(AWS_FACTORIES, log)
    session.cluster_stack_outputs = AsyncMock(return_value={
        "SecurityGroups": "sg-1", "VpcId": "vpc-1", "SubnetIds": "s1,s2,s3",
    })
    session.describe_node_pool = AsyncMock(return_value=None)
    session.describe_cluster = AsyncMock(return_value=ClusterDescription(
        name="demo", state="ACTIVE", active=True, version="1.10", endpoint="https://eks.example",
    ))
    return session


@pytest.fixture
def eks(aws_session, store, repo):
    provisioner = MagicMock()
    provisioner.connect.return_value = aws_session
    return EksLifecycleController(provisioner, store, repo, config=EksConfig(
        default_images=("us-east-1=ami-default",),
    ))


def create_request(**kwargs):
    defaults = dict(
        name="demo",
        location="us-east-1",
        cloud="aws",
        secret_id="creds",
        organization_id=1,
        ssh_secret_id="ssh",
        created_by=9,
        node_pools={
            "a": NodePoolDesired(name="a", instance_type="m5.large", image="ami-a", count=3),
            "b": NodePoolDesired(name="b", instance_type="m5.large", count=2),
        },
    )
    defaults.update(kwargs)
    return CreateClusterRequest(**defaults)


def running_cluster(*pools, cloud="aws", **kwargs):
    return ClusterSpec(
        name="demo",
        organization_id=1,
        location="us-east-1",
        cloud=cloud,
        secret_id="creds",
        id=1,
        version="1.10",
        status=ClusterStatus.RUNNING,
        node_pools=pools,
        **kwargs,
    )


def stored_pool(name, **kwargs):
    defaults = dict(
        instance_type="m5.large", image="ami-a", spot_price="0.0", count=3,
        id=100, created_by=9, created_at=datetime(2024, 1, 1, tzinfo=UTC), cluster_id=1,
    )
    defaults.update(kwargs)
    return NodePoolCurrent(name=name, **defaults)


class TestEksCreate:
    @pytest.mark.asyncio
    async def test_steps_run_in_provisioning_order(self, eks, log, repo):
        result = await eks.create(create_request())

        assert result.succeeded
        assert log == [
            "ensure_iam_role:demo-pipeline-eks",
            "create_vpc:demo-pipeline-eks",
            "upload_ssh_key:ssh-key-for-cluster-demo",
            "generate_vpc_config:demo-pipeline-eks",
            "create_eks_cluster:demo",
            "load_eks_settings:demo",
            "create_iam_user:demo",
            "create_node_pool_stack:demo-pipeline-eks-nodepool-a",
            "create_node_pool_stack:demo-pipeline-eks-nodepool-b",
        ]
        repo.save.assert_called_once()

    @pytest.mark.asyncio
    async def test_success_persists_running_cluster_with_outputs(self, eks, repo):
        result = await eks.create(create_request())

        saved = repo.save.call_args.args[0]
        assert saved.status is ClusterStatus.RUNNING
        assert saved.properties["api_endpoint"] == "https://eks.example"
        assert saved.properties["access_key_id"] == "AKIA1"
        assert [np.name for np in saved.node_pools] == ["a", "b"]
        assert result.cluster.id == 1

    @pytest.mark.asyncio
    async def test_defaults_applied(self, eks, repo):
        await eks.create(create_request())

        saved = repo.save.call_args.args[0]
        assert saved.version == "1.10"
        assert saved.node_pool("b").image == "ami-default"
        assert saved.node_pool("a").image == "ami-a"
        assert saved.node_pool("a").spot_price == "0.0"

    @pytest.mark.asyncio
    async def test_validation_error_before_any_step(self, eks, log, repo):
        request = create_request(location="ap-south-1")

        with pytest.raises(ValidationError) as exc:
            await eks.create(request)

        assert exc.value.reason is ValidationReason.MISSING_IMAGE
        assert log == []
        eks.provisioner.connect.assert_not_called()
        repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_ssh_secret_required(self, eks, log):
        with pytest.raises(ConfigurationError):
            await eks.create(create_request(ssh_secret_id=""))
        assert log == []

    @pytest.mark.asyncio
    async def test_failure_rolls_back_and_persists_nothing(self, eks, aws_session, log, repo):
        failing = fake_session(AWS_FACTORIES, log, failing={"create_eks_cluster:demo"})
        eks.provisioner.connect.return_value = failing

        result = await eks.create(create_request())

        assert not result.succeeded
        assert result.cluster.status is ClusterStatus.FAILED
        assert log[-4:] == [
            "undo:generate_vpc_config:demo-pipeline-eks",
            "undo:upload_ssh_key:ssh-key-for-cluster-demo",
            "undo:create_vpc:demo-pipeline-eks",
            "undo:ensure_iam_role:demo-pipeline-eks",
        ]
        repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_cloud_rejected(self, eks):
        with pytest.raises(ValueError):
            await eks.create(create_request(cloud="oracle"))


class TestEksUpdate:
    @pytest.mark.asyncio
    async def test_noop_update_runs_nothing(self, eks, repo, log):
        cluster = running_cluster(stored_pool("a"))
        request = UpdateClusterRequest(cloud="aws", node_pools={
            "a": NodePoolDesired(name="a", instance_type="m5.large", image="ami-a",
                                 spot_price="0.0", count=3),
        })

        result = await eks.update(cluster, request)

        assert result.no_op
        assert result.pipeline.records == []
        assert log == []
        repo.save.assert_not_called()
        repo.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_cloud_mismatch(self, eks):
        request = UpdateClusterRequest(cloud="oracle", node_pools={})
        with pytest.raises(ValidationError) as exc:
            await eks.update(running_cluster(stored_pool("a")), request)
        assert exc.value.reason is ValidationReason.CLOUD_MISMATCH

    @pytest.mark.asyncio
    async def test_requires_running_cluster(self, eks):
        cluster = replace(running_cluster(), status=ClusterStatus.FAILED)
        with pytest.raises(InvalidTransitionError):
            await eks.update(cluster, UpdateClusterRequest(cloud="aws", node_pools={}))

    @pytest.mark.asyncio
    async def test_missing_stack_output_aborts_before_steps(self, eks, aws_session, log, repo):
        aws_session.cluster_stack_outputs.return_value = {"VpcId": "vpc-1", "SubnetIds": "s1"}
        request = UpdateClusterRequest(cloud="aws", node_pools={
            "a": NodePoolDesired(name="a", count=5),
        })

        with pytest.raises(ConfigurationError, match="SecurityGroups"):
            await eks.update(running_cluster(stored_pool("a")), request)

        assert log == []
        repo.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_plans_create_update_delete(self, eks, aws_session, log, repo):
        live = {
            "demo-pipeline-eks-nodepool-a": LiveAttributes("m5.large", "ami-a", "0.0", 3),
            "demo-pipeline-eks-nodepool-c": LiveAttributes("m5.large", "ami-a", "0.0", 1),
        }
        aws_session.describe_node_pool.side_effect = lambda name: live.get(name)
        cluster = running_cluster(stored_pool("a"), stored_pool("c", id=101), stored_pool("d", id=102))
        request = UpdateClusterRequest(cloud="aws", updated_by=5, node_pools={
            "a": NodePoolDesired(name="a", count=6),
            "b": NodePoolDesired(name="b", instance_type="t3.large", count=1),
        })

        result = await eks.update(cluster, request)

        assert result.succeeded
        assert log == [
            "create_node_pool_stack:demo-pipeline-eks-nodepool-b",
            "update_node_pool_stack:demo-pipeline-eks-nodepool-a",
            "delete_stack:demo-pipeline-eks-nodepool-c",
        ]
        repo.update_status.assert_called_once_with(1, ClusterStatus.UPDATING, "Cluster update in progress")
        repo.save.assert_called_once()
        saved = repo.save.call_args.args[0]
        assert saved.status is ClusterStatus.RUNNING
        assert {np.name: np.count for np in saved.node_pools} == {"b": 1, "a": 6}
        assert saved.node_pool("b").image == "ami-default"
        assert saved.node_pool("b").created_by == 5

    @pytest.mark.asyncio
    async def test_unchanged_pool_is_skipped(self, eks, aws_session, log):
        aws_session.describe_node_pool.return_value = LiveAttributes("m5.large", "ami-a", "0.0", 3)
        cluster = running_cluster(stored_pool("a"), stored_pool("b", id=101))
        request = UpdateClusterRequest(cloud="aws", node_pools={
            "a": NodePoolDesired(name="a", count=3),
            "b": NodePoolDesired(name="b", count=4),
        })

        await eks.update(cluster, request)

        assert log == ["update_node_pool_stack:demo-pipeline-eks-nodepool-b"]

    @pytest.mark.asyncio
    async def test_stored_but_not_live_pool_is_recreated(self, eks, log):
        cluster = running_cluster(stored_pool("a"))
        request = UpdateClusterRequest(cloud="aws", node_pools={"a": NodePoolDesired(name="a", count=4)})

        await eks.update(cluster, request)

        assert log == ["create_node_pool_stack:demo-pipeline-eks-nodepool-a"]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_cluster_running(self, eks, aws_session, log, repo):
        failing = fake_session(
            AWS_FACTORIES, log, failing={"create_node_pool_stack:demo-pipeline-eks-nodepool-c"}
        )
        failing.cluster_stack_outputs = aws_session.cluster_stack_outputs
        failing.describe_node_pool = AsyncMock(
            side_effect=lambda name: LiveAttributes("m5.large", "ami-a", "0.0", 3)
            if name.endswith("-a") else None
        )
        eks.provisioner.connect.return_value = failing
        cluster = running_cluster(stored_pool("a"))
        request = UpdateClusterRequest(cloud="aws", node_pools={
            "a": NodePoolDesired(name="a", count=3),
            "b": NodePoolDesired(name="b", instance_type="t3", count=1),
            "c": NodePoolDesired(name="c", instance_type="t3", count=1),
        })

        result = await eks.update(cluster, request)

        assert not result.succeeded
        assert not result.pipeline.rolled_back
        saved = repo.save.call_args.args[0]
        assert saved.status is ClusterStatus.RUNNING
        assert "create_node_pool_stack:demo-pipeline-eks-nodepool-c" in saved.status_message
        assert sorted(np.name for np in saved.node_pools) == ["a", "b"]
        repo.save.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancelled_update_persists_achieved_pools_as_failed(
        self, eks, aws_session, log, repo
    ):
        started = asyncio.Event()
        session = fake_session(
            AWS_FACTORIES, log,
            hanging={"create_node_pool_stack:demo-pipeline-eks-nodepool-d"},
            started=started,
        )
        session.cluster_stack_outputs = aws_session.cluster_stack_outputs
        session.describe_node_pool = AsyncMock(
            side_effect=lambda name: LiveAttributes("m5.large", "ami-a", "0.0", 3)
            if name.endswith("-a") else None
        )
        eks.provisioner.connect.return_value = session
        cluster = running_cluster(stored_pool("a"))
        request = UpdateClusterRequest(cloud="aws", node_pools={
            "a": NodePoolDesired(name="a", count=3),
            "c": NodePoolDesired(name="c", instance_type="t3", count=1),
            "d": NodePoolDesired(name="d", instance_type="t3", count=1),
        })

        task = asyncio.create_task(eks.update(cluster, request))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        repo.save.assert_called_once()
        saved = repo.save.call_args.args[0]
        assert saved.status is ClusterStatus.FAILED
        assert "interrupted" in saved.status_message
        assert sorted(np.name for np in saved.node_pools) == ["a", "c"]
        assert saved.start_deleting().status is ClusterStatus.DELETING


class TestEksDelete:
    @pytest.mark.asyncio
    async def test_deletes_in_teardown_order(self, eks, log, repo):
        cluster = running_cluster(stored_pool("a"), properties={"access_key_id": "AKIA1"})

        result = await eks.delete(cluster)

        assert result.cluster.status is ClusterStatus.DELETED
        assert log == [
            "wait_resource_deletion:demo",
            "delete_stack:demo-pipeline-eks-nodepool-a",
            "delete_cluster:demo",
            "delete_ssh_key:ssh-key-for-cluster-demo",
            "delete_stack:demo-pipeline-eks",
            "delete_iam_role:demo-pipeline-eks",
            "delete_user:demo",
        ]
        repo.update_status.assert_called_once_with(1, ClusterStatus.DELETING, "Cluster deletion in progress")
        repo.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_failure_keeps_record_in_failed_state(self, eks, log, repo):
        failing = fake_session(AWS_FACTORIES, log, failing={"delete_cluster:demo"})
        eks.provisioner.connect.return_value = failing

        result = await eks.delete(running_cluster(stored_pool("a")))

        assert result.cluster.status is ClusterStatus.FAILED
        assert not result.pipeline.rolled_back
        assert "undo:" not in " ".join(log)
        repo.delete.assert_not_called()
        assert repo.update_status.call_args.args[1] is ClusterStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancelled_delete_leaves_cluster_failed_and_retryable(self, eks, log, repo):
        started = asyncio.Event()
        eks.provisioner.connect.return_value = fake_session(
            AWS_FACTORIES, log, hanging={"delete_cluster:demo"}, started=started
        )
        cluster = running_cluster(stored_pool("a"))

        task = asyncio.create_task(eks.delete(cluster))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        repo.delete.assert_not_called()
        _, status, message = repo.update_status.call_args.args
        assert status is ClusterStatus.FAILED
        assert "interrupted" in message

        eks.provisioner.connect.return_value = fake_session(AWS_FACTORIES, log)
        result = await eks.delete(replace(cluster, status=status, status_message=message))

        assert result.cluster.status is ClusterStatus.DELETED
        repo.delete.assert_called_once()


class TestEksQueries:
    @pytest.mark.asyncio
    async def test_status_of_unprovisioned_cluster(self, eks):
        cluster = replace(running_cluster(), status=ClusterStatus.REQUESTED)
        with pytest.raises(NotReadyError):
            await eks.status(cluster)

    @pytest.mark.asyncio
    async def test_status_snapshot(self, eks):
        snapshot = await eks.status(running_cluster(stored_pool("a")))
        assert snapshot.status is ClusterStatus.RUNNING
        assert snapshot.resource_id == 1
        assert snapshot.node_pools["a"].count == 3

    @pytest.mark.asyncio
    async def test_details(self, eks):
        details = await eks.details(running_cluster(stored_pool("a")))
        assert details.master_version == "1.10"
        assert details.endpoint == "https://eks.example"
        assert details.node_pools["a"].version == "1.10"
        assert details.node_pools["a"].created_by == 9

    @pytest.mark.asyncio
    async def test_details_of_inactive_cluster(self, eks, aws_session):
        aws_session.describe_cluster.return_value = ClusterDescription(
            name="demo", state="CREATING", active=False
        )
        with pytest.raises(NotReadyError) as exc:
            await eks.details(running_cluster())
        assert exc.value.state == "CREATING"

    @pytest.mark.asyncio
    async def test_api_endpoint_memoized_per_operation(self, eks, aws_session):
        await eks.details(running_cluster())
        await eks.api_endpoint(running_cluster())
        # details: describe + endpoint, api_endpoint: endpoint again
        assert aws_session.describe_cluster.await_count == 3


# ---------------------------------------------------------------------------
# OKE
# ---------------------------------------------------------------------------

NETWORK = NetworkValues("vcn-1", ("lb1", "lb2"), ("w1", "w2", "w3"))


@pytest.fixture
def oci_store():
    s = InMemorySecretStore()
    s.put_secret(1, "creds", {"tenancy_ocid": "t"})
    return s


@pytest.fixture
def oracle_session(log):
    session = fake_session(ORACLE_FACTORIES, log)
    session.network_values = AsyncMock(return_value=NETWORK)
    session.describe_node_pool = AsyncMock(return_value=None)
    session.describe_cluster = AsyncMock(return_value=ClusterDescription(
        name="demo", state="ACTIVE", active=True, version="v1.10.3",
        endpoint="abc.clusters.oci.example:6443",
    ))
    return session


@pytest.fixture
def oke(oracle_session, oci_store, repo):
    provisioner = MagicMock()
    provisioner.connect.return_value = oracle_session
    return OkeLifecycleController(provisioner, oci_store, repo)


def oke_request(**kwargs):
    defaults = dict(
        name="demo", location="eu-frankfurt-1", cloud="oracle", secret_id="creds",
        organization_id=1,
        node_pools={"a": NodePoolDesired(name="a", count=6), "b": NodePoolDesired(name="b", count=4)},
    )
    defaults.update(kwargs)
    return CreateClusterRequest(**defaults)


class TestOkeCreate:
    @pytest.mark.asyncio
    async def test_steps_and_placements(self, oke, log, repo):
        result = await oke.create(oke_request())

        assert result.succeeded
        assert log == [
            "create_vcn:p-demo",
            "create_cluster:demo",
            "create_node_pool:a",
            "create_node_pool:b",
        ]
        assert [r.step_name for r in result.pipeline.records][1] == NETWORK_STEP
        saved = repo.save.call_args.args[0]
        assert saved.properties == {"vcn_id": "vcn-1", "cluster_id": "oke-1"}
        assert saved.version == "v1.10.3"
        assert saved.node_pool("a").image == "Oracle-Linux-7.4"
        assert saved.node_pool("a").instance_type == "VM.Standard1.1"

    @pytest.mark.asyncio
    async def test_too_few_worker_subnets_rolls_back_vcn(self, oke, oracle_session, log, repo):
        oracle_session.network_values.return_value = NetworkValues("vcn-1", ("lb1", "lb2"), ("w1", "w2"))

        result = await oke.create(oke_request())

        assert result.pipeline.failed_step == NETWORK_STEP
        assert isinstance(result.pipeline.error.cause, ConfigurationError)
        assert log == ["create_vcn:p-demo", "undo:create_vcn:p-demo"]
        repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_autoscaling_not_supported(self, oke, log):
        pools = {"a": NodePoolDesired(name="a", count=3, autoscaling=True, min_count=1, max_count=3)}
        with pytest.raises(ConfigurationError):
            await oke.create(oke_request(node_pools=pools))
        assert log == []


class TestOkeUpdateAndDelete:
    def cluster(self, *pools):
        return running_cluster(
            *pools, cloud="oracle", properties={"vcn_id": "vcn-1", "cluster_id": "oke-1"}
        )

    @pytest.mark.asyncio
    async def test_bad_load_balancer_subnets_abort_first(self, oke, oracle_session, log, repo):
        oracle_session.network_values.return_value = NetworkValues("vcn-1", ("lb1",), ("w1", "w2", "w3"))
        request = UpdateClusterRequest(cloud="oracle", node_pools={"a": NodePoolDesired(name="a", count=9)})

        with pytest.raises(ConfigurationError):
            await oke.update(self.cluster(stored_pool("a", image="Oracle-Linux-7.4")), request)

        assert log == []
        repo.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_rejects_autoscaling_before_any_step(self, oke, oracle_session, log, repo):
        request = UpdateClusterRequest(cloud="oracle", node_pools={
            "a": NodePoolDesired(name="a", count=3, autoscaling=True, min_count=1, max_count=5),
        })

        with pytest.raises(ConfigurationError):
            await oke.update(self.cluster(stored_pool("a", image="Oracle-Linux-7.4")), request)

        assert log == []
        oracle_session.network_values.assert_not_called()
        repo.update_status.assert_not_called()
        repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_sets_placement(self, oke, oracle_session, log):
        oracle_session.describe_node_pool.return_value = LiveAttributes(
            "VM.Standard1.1", "Oracle-Linux-7.4", observed_capacity=3, version="v1.10.3"
        )
        cluster = self.cluster(
            stored_pool("a", instance_type="VM.Standard1.1", image="Oracle-Linux-7.4")
        )
        request = UpdateClusterRequest(cloud="oracle", node_pools={"a": NodePoolDesired(name="a", count=10)})

        result = await oke.update(cluster, request)

        assert result.succeeded
        assert log == ["update_node_pool:a"]

    @pytest.mark.asyncio
    async def test_delete_order(self, oke, log, repo):
        result = await oke.delete(self.cluster(stored_pool("a"), stored_pool("b", id=101)))

        assert result.cluster.status is ClusterStatus.DELETED
        assert log == ["delete_node_pool:a", "delete_node_pool:b", "delete_cluster", "delete_vcn"]
        repo.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_endpoint_is_https(self, oke):
        assert await oke.api_endpoint(self.cluster()) == "https://abc.clusters.oci.example:6443"


class TestPlaceNodePools:
    def pool(self, name, count, action=PoolAction.CREATE):
        return NodePoolReconciled(name=name, action=action, count=count)

    def test_places_each_surviving_pool(self):
        placements = place_node_pools(
            [self.pool("a", 6), self.pool("b", 5), self.pool("c", 0, PoolAction.DELETE)], NETWORK
        )
        assert placements["a"].subnet_ids == ("w1", "w2", "w3")
        assert placements["a"].total == 6
        assert placements["b"].subnet_ids == ("w1",)
        assert "c" not in placements

    def test_unplaceable_pool(self):
        with pytest.raises(ConfigurationError, match="a"):
            place_node_pools([self.pool("a", 0)], NETWORK)

    def test_load_balancer_subnets_required(self):
        with pytest.raises(ConfigurationError):
            place_node_pools([self.pool("a", 3)], NetworkValues("v", ("lb1",), NETWORK.worker_subnet_ids))
