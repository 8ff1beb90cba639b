"""
Node Pool Reconciler Tests

Architectural Intent:
- Pure domain tests, no mocks needed
- Verifies classification, field precedence, clamping and validation
"""

import pytest
from datetime import datetime, UTC

from clusterforge.domain.entities.node_pool import (
    LiveAttributes,
    NodePoolCurrent,
    NodePoolDesired,
    PoolAction,
)
from clusterforge.domain.exceptions import ValidationError, ValidationReason
from clusterforge.domain.services.node_pool_reconciler import (
    NodePoolReconciler,
    clamp_count,
    is_unchanged,
)

CREATED_AT = datetime(2024, 1, 1, tzinfo=UTC)


def stored(name="a", **kwargs):
    defaults = dict(
        instance_type="m5.large",
        image="ami-1",
        spot_price="0.2",
        count=3,
        id=10,
        created_by=7,
        created_at=CREATED_AT,
        cluster_id=1,
    )
    defaults.update(kwargs)
    return NodePoolCurrent(name=name, **defaults)


@pytest.fixture
def reconciler():
    return NodePoolReconciler()


class TestClassification:
    def test_creates_updates_deletes_in_order(self, reconciler):
        desired = {
            "new": NodePoolDesired(name="new", instance_type="t3", image="ami-2", count=1),
            "kept": NodePoolDesired(name="kept", count=4),
        }
        current = [stored("kept"), stored("gone")]

        result = reconciler.reconcile(desired, current)

        assert [(p.name, p.action) for p in result] == [
            ("new", PoolAction.CREATE),
            ("kept", PoolAction.UPDATE),
            ("gone", PoolAction.DELETE),
        ]

    def test_every_name_appears_exactly_once(self, reconciler):
        desired = {n: NodePoolDesired(name=n, instance_type="t3", image="i", count=1) for n in "abc"}
        current = [stored("b"), stored("d")]

        names = [p.name for p in reconciler.reconcile(desired, current)]

        assert sorted(names) == ["a", "b", "c", "d"]

    def test_delete_carries_identity_only(self, reconciler):
        result = reconciler.reconcile({}, [stored("gone")])

        (pool,) = result
        assert pool.delete
        assert pool.id == 10
        assert pool.created_by == 7
        assert pool.instance_type == ""

    def test_mark_all_for_deletion(self, reconciler):
        result = reconciler.mark_all_for_deletion([stored("a"), stored("b")])
        assert all(p.delete for p in result)
        assert [p.name for p in result] == ["a", "b"]

    def test_duplicate_current_names_rejected(self, reconciler):
        with pytest.raises(ValidationError) as exc:
            reconciler.reconcile({}, [stored("a"), stored("a", id=11)])
        assert exc.value.reason is ValidationReason.DUPLICATE_NODE_POOL

    def test_inputs_not_mutated(self, reconciler):
        desired = {"a": NodePoolDesired(name="a", count=5)}
        current = [stored("a")]
        snapshot = (dict(desired), list(current))

        reconciler.reconcile(desired, current)

        assert (desired, current) == snapshot


class TestExistingPools:
    def test_keeps_identity_and_takes_request_count(self, reconciler):
        result = reconciler.reconcile({"a": NodePoolDesired(name="a", count=6)}, [stored("a")])

        (pool,) = result
        assert pool.action is PoolAction.UPDATE
        assert pool.count == 6
        assert pool.id == 10
        assert pool.created_at == CREATED_AT
        assert pool.instance_type == "m5.large"
        assert pool.spot_price == "0.2"

    def test_live_attributes_override_request(self, reconciler):
        desired = {"a": NodePoolDesired(name="a", instance_type="c5.large", image="ami-9", count=3)}
        live = {"a": LiveAttributes(instance_type="m5.large", image="ami-live", spot_price="0.5")}

        (pool,) = reconciler.reconcile(desired, [stored("a")], live)

        assert pool.instance_type == "m5.large"
        assert pool.image == "ami-live"
        assert pool.spot_price == "0.5"

    def test_autoscaled_pool_clamps_observed_capacity(self, reconciler):
        desired = {"a": NodePoolDesired(name="a", autoscaling=True, min_count=2, max_count=5, count=3)}
        live = {"a": LiveAttributes(instance_type="m5.large", image="ami-1", observed_capacity=8)}

        (pool,) = reconciler.reconcile(desired, [stored("a")], live)

        assert pool.count == 5

    def test_autoscaled_pool_without_live_capacity_clamps_request(self, reconciler):
        desired = {"a": NodePoolDesired(name="a", autoscaling=True, min_count=2, max_count=5, count=0)}

        (pool,) = reconciler.reconcile(desired, [stored("a")])

        assert pool.count == 2

    def test_fixed_pool_ignores_observed_capacity(self, reconciler):
        desired = {"a": NodePoolDesired(name="a", count=3)}
        live = {"a": LiveAttributes(instance_type="m5.large", image="ami-1", observed_capacity=8)}

        (pool,) = reconciler.reconcile(desired, [stored("a")], live)

        assert pool.count == 3


class TestNewPools:
    def test_default_spot_price(self):
        reconciler = NodePoolReconciler(default_spot_price="0.1")
        desired = {"a": NodePoolDesired(name="a", instance_type="t3", image="ami", count=1)}

        (pool,) = reconciler.reconcile(desired, [], created_by=42)

        assert pool.action is PoolAction.CREATE
        assert pool.spot_price == "0.1"
        assert pool.created_by == 42
        assert pool.id is None

    def test_missing_instance_type(self, reconciler):
        with pytest.raises(ValidationError) as exc:
            reconciler.reconcile({"a": NodePoolDesired(name="a", image="ami")}, [])
        assert exc.value.reason is ValidationReason.MISSING_INSTANCE_TYPE
        assert exc.value.pool_name == "a"

    def test_missing_image(self, reconciler):
        with pytest.raises(ValidationError) as exc:
            reconciler.reconcile({"a": NodePoolDesired(name="a", instance_type="t3")}, [])
        assert exc.value.reason is ValidationReason.MISSING_IMAGE

    def test_invalid_scaling_bounds(self, reconciler):
        desired = {
            "a": NodePoolDesired(
                name="a", instance_type="t3", image="ami", autoscaling=True, min_count=5, max_count=2
            )
        }
        with pytest.raises(ValidationError) as exc:
            reconciler.reconcile(desired, [])
        assert exc.value.reason is ValidationReason.INVALID_SCALING_BOUNDS

    def test_autoscaled_new_pool_is_clamped(self, reconciler):
        desired = {
            "a": NodePoolDesired(
                name="a", instance_type="t3", image="ami", autoscaling=True,
                min_count=1, max_count=3, count=10,
            )
        }
        (pool,) = reconciler.reconcile(desired, [])
        assert pool.count == 3


class TestIdempotence:
    def test_reconciling_the_result_again_is_stable(self, reconciler):
        desired = {
            "a": NodePoolDesired(name="a", count=4, autoscaling=True, min_count=1, max_count=6),
            "b": NodePoolDesired(name="b", instance_type="t3", image="ami", count=2),
        }
        first = reconciler.reconcile(desired, [stored("a")])
        surviving = [p.to_current() for p in first if not p.delete]

        second = reconciler.reconcile(desired, surviving)

        by_name = {p.name: p for p in second}
        assert all(p.action is PoolAction.UPDATE for p in second)
        for pool in first:
            assert by_name[pool.name].count == pool.count
            assert by_name[pool.name].instance_type == pool.instance_type


class TestHelpers:
    @pytest.mark.parametrize("count,expected", [(0, 2), (3, 3), (9, 5)])
    def test_clamp_count(self, count, expected):
        assert clamp_count(count, 2, 5) == expected

    def test_is_unchanged(self, reconciler):
        (pool,) = reconciler.reconcile({"a": NodePoolDesired(name="a", count=3)}, [stored("a")])
        assert is_unchanged(pool, stored("a"))
        assert not is_unchanged(pool, stored("a", count=4))
