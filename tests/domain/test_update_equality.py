"""Tests for update no-op detection."""

import pytest
from datetime import datetime, UTC

from clusterforge.application.dtos.cluster_dtos import UpdateClusterRequest
from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus
from clusterforge.domain.entities.node_pool import NodePoolCurrent, NodePoolDesired
from clusterforge.domain.exceptions import ValidationError, ValidationReason
from clusterforge.domain.services.update_equality import is_noop, project_stored


def cluster_with(*pools):
    return ClusterSpec(
        name="demo",
        organization_id=1,
        location="us-east-1",
        cloud="aws",
        secret_id="s",
        id=5,
        status=ClusterStatus.RUNNING,
        node_pools=pools,
    )


STORED_POOL = NodePoolCurrent(
    name="a",
    instance_type="m5.large",
    image="ami-1",
    spot_price="0.0",
    count=3,
    id=99,
    created_by=4,
    created_at=datetime(2024, 1, 1, tzinfo=UTC),
    cluster_id=5,
)

REQUESTED_POOL = NodePoolDesired(
    name="a", instance_type="m5.large", image="ami-1", spot_price="0.0", count=3
)


class TestIsNoop:
    def test_identical_request_ignores_identity_fields(self):
        request = UpdateClusterRequest(cloud="aws", node_pools={"a": REQUESTED_POOL})
        assert is_noop(request, cluster_with(STORED_POOL))

    def test_changed_count(self):
        changed = NodePoolDesired(
            name="a", instance_type="m5.large", image="ami-1", spot_price="0.0", count=4
        )
        request = UpdateClusterRequest(cloud="aws", node_pools={"a": changed})
        assert not is_noop(request, cluster_with(STORED_POOL))

    def test_added_pool(self):
        extra = NodePoolDesired(name="b", instance_type="t3", image="ami", count=1)
        request = UpdateClusterRequest(cloud="aws", node_pools={"a": REQUESTED_POOL, "b": extra})
        assert not is_noop(request, cluster_with(STORED_POOL))

    def test_removed_pool(self):
        request = UpdateClusterRequest(cloud="aws", node_pools={})
        assert not is_noop(request, cluster_with(STORED_POOL))

    def test_cloud_mismatch(self):
        request = UpdateClusterRequest(cloud="oracle", node_pools={"a": REQUESTED_POOL})
        with pytest.raises(ValidationError) as exc:
            is_noop(request, cluster_with(STORED_POOL))
        assert exc.value.reason is ValidationReason.CLOUD_MISMATCH

    def test_project_stored(self):
        assert project_stored(cluster_with(STORED_POOL)) == {"a": REQUESTED_POOL}
