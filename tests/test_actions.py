"""
Tests for the async action pipeline driven through the Entity class API.
"""
import asyncio
import logging
import pytest

from minstore.orm import (
    Entity, EntityNotBoundError, IdentityMissingError, Store,
    UnknownActionError, UnknownMutationError, ValidationError,
)
from minstore.orm.actions import ACTIONS, ActionContext

from conftest import Example, User

class TestWriteActions:
    """create / insert / update / insert_or_update."""

    @pytest.mark.asyncio
    async def test_create_returns_instances_and_stores_records(self, store):
        created = await Example.create({"id": 1, "name": "test"})
        assert [type(item) for item in created] == [Example]
        assert created[0].name == "test"
        assert store.read_snapshot()["examples"] == [{"id": 1, "name": "test", "tags": []}]

    @pytest.mark.asyncio
    async def test_create_replaces_collection(self, store):
        await Example.create([{"id": 1}, {"id": 2}])
        await Example.create({"id": 3})
        assert [item.id for item in Example.all()] == [3]

    @pytest.mark.asyncio
    async def test_insert_keeps_duplicates(self, store):
        await Example.insert([{"id": 1}, {"id": 1}])
        assert [record["id"] for record in store.read_snapshot()["examples"]] == [1, 1]

    @pytest.mark.asyncio
    async def test_insert_appends(self, store):
        await Example.create({"id": 1, "name": "a"})
        await Example.insert({"id": 2, "name": "b"})
        assert [item.name for item in Example.all()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_changes_existing_only(self, store):
        await Example.create({"id": 1, "name": "test"})
        await Example.update({"id": 1, "name": "updated"})
        await Example.update({"id": 2, "name": "ghost"})
        assert [item.to_object() for item in Example.all()] == [
            {"id": 1, "name": "updated", "tags": []}
        ]

    @pytest.mark.asyncio
    async def test_update_fills_defaults_for_absent_fields(self, store):
        await Example.create({"id": 1, "name": "test", "tags": ["x"]})
        await Example.update({"id": 1, "name": "renamed"})
        assert Example.find(1).tags == []

    @pytest.mark.asyncio
    async def test_insert_or_update_upserts(self, store):
        await Example.insert_or_update([{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
        await Example.insert_or_update([{"id": 2, "name": "B"}, {"id": 3, "name": "c"}])
        assert [(item.id, item.name) for item in Example.all()] == [(1, "a"), (2, "B"), (3, "c")]

    @pytest.mark.asyncio
    async def test_insert_or_update_twice_is_idempotent(self, store):
        data = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        await Example.insert_or_update(data)
        once = store.read_snapshot()
        await Example.insert_or_update(data)
        assert store.read_snapshot() == once

    @pytest.mark.asyncio
    async def test_missing_identity_rejected(self, store):
        with pytest.raises(IdentityMissingError):
            await Example.create({"name": "no id"})
        assert "examples" not in store.read_snapshot()

    @pytest.mark.asyncio
    async def test_each_action_publishes_once(self, store):
        versions = []
        store.subscribe(lambda state, mutation: versions.append(mutation))
        await Example.create([{"id": 1}, {"id": 2}, {"id": 3}])
        await Example.insert_or_update([{"id": 1}, {"id": 4}])
        assert versions == ["create", "insert_or_update"]

class TestDeleteActions:
    """delete / delete_all / reset."""

    @pytest.mark.asyncio
    async def test_delete_by_id_returns_removed(self, store):
        await Example.create({"id": 1, "name": "test"})
        removed = await Example.delete(1)
        assert [item.name for item in removed] == ["test"]
        assert Example.all() == []

    @pytest.mark.asyncio
    async def test_delete_by_id_list(self, store):
        await Example.create([{"id": i, "name": f"Item {i}"} for i in range(10)])
        removed = await Example.delete(list(range(5)))
        assert [item.id for item in removed] == [0, 1, 2, 3, 4]
        assert Example.all()[0].name == "Item 5"

    @pytest.mark.asyncio
    async def test_delete_by_predicate(self, store):
        await Example.create([
            {"id": 1, "name": "test1"},
            {"id": 2, "name": "test2"},
            {"id": 3, "name": "other"},
        ])
        removed = await Example.delete(lambda item: item.name.startswith("test"))
        assert [item.id for item in removed] == [1, 2]
        assert [item.to_object() for item in Example.all()] == [{"id": 3, "name": "other", "tags": []}]

    @pytest.mark.asyncio
    async def test_delete_from_missing_collection(self, store):
        assert await Example.delete(1) == []
        assert await Example.delete(lambda item: True) == []

    @pytest.mark.asyncio
    async def test_delete_all(self, store):
        await Example.create([{"id": 1}, {"id": 2}])
        await User.create({"id": 1})
        await Example.delete_all()
        assert store.read_snapshot()["examples"] == []
        assert len(User.all()) == 1

    @pytest.mark.asyncio
    async def test_reset(self, store):
        await Example.create({"id": 1, "name": "Initial"})
        await User.create({"id": 1})
        await Example.reset()
        assert store.read_snapshot() == {}

class TestConcurrency:
    """Interleaved actions against one store."""

    @pytest.mark.asyncio
    async def test_concurrent_upserts_lose_nothing(self, store):
        await asyncio.gather(
            Example.insert_or_update({"id": 1, "name": "test1"}),
            Example.insert_or_update({"id": 2, "name": "test2"}),
            Example.insert_or_update({"id": 1, "name": "updatedTest1"}),
        )
        items = {item.id: item.name for item in Example.all()}
        assert items == {1: "updatedTest1", 2: "test2"}
        assert len(store.read_snapshot()["examples"]) == 2

    @pytest.mark.asyncio
    async def test_concurrent_batch_and_update(self, store):
        await asyncio.gather(
            Example.insert_or_update([{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]),
            Example.insert_or_update({"id": 1, "name": "renamed"}),
        )
        assert [(item.id, item.name) for item in Example.all()] == [(1, "renamed"), (2, "b")]

    @pytest.mark.asyncio
    async def test_many_concurrent_inserts(self, store):
        await asyncio.gather(*(Example.insert({"id": i}) for i in range(50)))
        assert sorted(item.id for item in Example.all()) == list(range(50))

class TestDispatch:
    """Store-level dispatch and commit errors."""

    @pytest.mark.asyncio
    async def test_unknown_action(self, store):
        await Example.create({"id": 1})
        before = store.read_snapshot()
        with pytest.raises(UnknownActionError):
            await store.dispatch("explode", {})
        assert store.read_snapshot() is before

    def test_unknown_mutation(self, store):
        before = store.read_snapshot()
        with pytest.raises(UnknownMutationError):
            store.commit("explode", {})
        assert store.read_snapshot() is before

    @pytest.mark.asyncio
    async def test_unbound_entity(self):
        class Unbound(Entity):
            entity = "unbound"

            @classmethod
            def fields(cls):
                return {"id": cls.attr(None)}

        with pytest.raises(EntityNotBoundError):
            await Unbound.create({"id": 1})
        with pytest.raises(EntityNotBoundError):
            Unbound.all()

    @pytest.mark.asyncio
    async def test_context_counts_commits(self, store):
        context = ActionContext(store)
        await ACTIONS["insert"](context, {"model": Example, "data": [{"id": 1}]})
        assert context.commit_count == 1
        assert context.state["examples"] == [{"id": 1, "name": "", "tags": []}]

    @pytest.mark.asyncio
    async def test_tracer_reports_extra_commits(self, store, caplog):
        from minstore.orm.tracer import trace_action

        @trace_action
        async def double(context, payload):
            context.commit("reset")
            context.commit("reset")

        with caplog.at_level(logging.ERROR, logger="ActionTracer"):
            await double(ActionContext(store), None)
        assert "issued 2 commits" in caplog.text

class TestConsumerValidation:
    """Validation layered on top of the action methods by consumers."""

    @pytest.mark.asyncio
    async def test_validation_before_create(self, store):
        class Validated(Entity):
            entity = "validated"

            @classmethod
            def fields(cls):
                return {"id": cls.attr(None), "name": cls.attr(""), "age": cls.attr(None)}

            @classmethod
            async def create(cls, data):
                if not isinstance(data.get("age"), int):
                    raise ValidationError("Age should be a number")
                return await super().create(data)

        Validated.init(store)
        with pytest.raises(ValidationError):
            await Validated.create({"id": 1, "name": "", "age": "not_a_number"})
        assert "validated" not in store.read_snapshot()
