"""Tests for instance aggregation and purge."""

from __future__ import annotations

from fleetwatch.nodes import InstanceStore, count_instances
from fleetwatch.nodes.instances import INSTANCES_KEY, owner_id


class TestCountInstances:
    def test_flat_owner_field(self):
        instances = [{"node": "A"}, {"node": "A"}, {"node": "B"}]
        assert count_instances(["A", "B", "C"], instances) == {"A": 2, "B": 1, "C": 0}

    def test_nested_owner_field(self):
        instances = [{"Node": {"id": "A"}}, {"Node": {"id": "B"}}]
        assert count_instances(["A", "B"], instances) == {"A": 1, "B": 1}

    def test_unknown_owner_ignored(self):
        assert count_instances(["A"], [{"node": "Z"}, {}]) == {"A": 0}

    def test_no_nodes(self):
        assert count_instances([], [{"node": "A"}]) == {}

    def test_does_not_mutate_inputs(self):
        ids = ["A"]
        instances = [{"node": "A"}]
        count_instances(ids, instances)
        assert ids == ["A"]
        assert instances == [{"node": "A"}]


class TestOwnerId:
    def test_nested_takes_precedence(self):
        assert owner_id({"Node": {"id": "A"}, "node": "B"}) == "A"

    def test_missing(self):
        assert owner_id({"Node": None}) is None


class TestInstanceStore:
    async def test_load_empty(self, kv):
        assert await InstanceStore(kv).load() == []

    async def test_counts(self, kv):
        await kv.set(INSTANCES_KEY, [{"node": "A"}])
        assert await InstanceStore(kv).counts(["A", "B"]) == {"A": 1, "B": 0}

    async def test_purge_nothing(self, kv):
        await kv.set(INSTANCES_KEY, [{"node": "B"}])
        assert await InstanceStore(kv).purge_node("A") == []
        assert await kv.get(INSTANCES_KEY) == [{"node": "B"}]

    async def test_purge_removes_records_and_user_lists(self, kv):
        await kv.set(INSTANCES_KEY, [
            {"Id": "i1", "User": "u1", "node": "A"},
            {"Id": "i2", "User": "u2", "node": "A"},
            {"Id": "i3", "User": "u1", "node": "B"},
        ])
        await kv.set("i1_instance", {"Id": "i1"})
        await kv.set("i2_instance", {"Id": "i2"})
        await kv.set("u1_instances", [{"Id": "i1"}, {"Id": "i3"}])
        await kv.set("u2_instances", [{"Id": "i2"}])

        removed = await InstanceStore(kv).purge_node("A")
        assert [i["Id"] for i in removed] == ["i1", "i2"]
        assert await kv.get(INSTANCES_KEY) == [{"Id": "i3", "User": "u1", "node": "B"}]
        assert await kv.get("i1_instance") is None
        assert await kv.get("i2_instance") is None
        assert await kv.get("u1_instances") == [{"Id": "i3"}]
        assert await kv.get("u2_instances") == []
