"""Unit tests for cascade delete key planning."""

import pytest

from services.plan_api.app.cascade import plan_delete_keys
from tests.fixtures.sample_plans import sample_plan


class TestPlanDeleteKeys:

    def test_single_service(self, p1):
        assert plan_delete_keys(p1) == [
            "P1", "P1:etag",
            "C1", "C1:etag",
            "L1", "L1:etag",
            "S1", "S1:etag",
            "SC1", "SC1:etag",
        ]

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_key_count(self, count):
        plan = sample_plan(services=[str(i) for i in range(count)])

        keys = plan_delete_keys(plan)

        assert len(keys) == 2 + 2 + 6 * count
        assert len(set(keys)) == len(keys)
        assert set(plan.object_ids()) <= set(keys)

    def test_order_is_stable(self):
        plan = sample_plan(services=["1", "2"])

        assert plan_delete_keys(plan) == plan_delete_keys(sample_plan(services=["1", "2"]))
