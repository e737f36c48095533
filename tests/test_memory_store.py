"""
Tests for the in-memory document store and the shared batch semantics.
"""

import pytest

from ledgerbook.services.storage import (
    ConflictError,
    DocumentNotFoundError,
    DuplicateError,
    InMemoryDocumentStore,
    QueryFilter,
    WriteBatch,
)


@pytest.fixture
async def seeded_store():
    store = InMemoryDocumentStore()
    batch = store.batch()
    batch.create("items", "a", {"name": "alpha", "rank": 2, "balance": "10"})
    batch.create("items", "b", {"name": "beta", "rank": 1, "balance": "0"})
    batch.create("items", "c", {"name": "gamma", "rank": 3, "meta": {"kind": "x"}})
    await store.commit(batch)
    return store


class TestWriteBatch:
    """Tests for batch staging."""

    def test_increments_on_the_same_field_are_merged(self):
        batch = WriteBatch()
        batch.increment("accounts", "cash", "balance", "-120")
        batch.increment("accounts", "cash", "balance", "20")
        batch.increment("accounts", "food", "balance", "100")

        assert len(batch) == 2
        assert batch.operations[0].data == {"balance": "-100"}

    def test_methods_chain(self):
        batch = WriteBatch().create("c", "1", {}).delete("c", "2")
        assert [op.op_type for op in batch.operations] == ["create", "delete"]


class TestInMemoryDocumentStore:
    """Tests for reads and atomic commits."""

    async def test_get_returns_a_copy(self, seeded_store):
        doc = await seeded_store.get("items", "a")
        doc["name"] = "changed"

        assert (await seeded_store.get("items", "a"))["name"] == "alpha"
        assert doc["id"] == "a"

    async def test_get_missing(self, seeded_store):
        assert await seeded_store.get("items", "zzz") is None
        assert await seeded_store.get("nowhere", "a") is None

    async def test_query_filters_order_and_limit(self, seeded_store):
        docs = await seeded_store.query(
            "items",
            filters=[QueryFilter(field="rank", operator=">=", value=2)],
            order_by="rank",
            descending=True,
        )
        assert [doc["id"] for doc in docs] == ["c", "a"]

        docs = await seeded_store.query("items", order_by="rank", limit=1)
        assert [doc["id"] for doc in docs] == ["b"]

    async def test_query_dotted_field(self, seeded_store):
        docs = await seeded_store.query(
            "items", filters=[QueryFilter(field="meta.kind", value="x")]
        )
        assert [doc["id"] for doc in docs] == ["c"]

    async def test_query_in_operator(self, seeded_store):
        docs = await seeded_store.query(
            "items",
            filters=[QueryFilter(field="name", operator="in", value=["alpha", "beta"])],
            order_by="name",
        )
        assert [doc["id"] for doc in docs] == ["a", "b"]

    async def test_increment_is_relative(self, seeded_store):
        await seeded_store.commit(seeded_store.batch().increment("items", "a", "balance", "-2.5"))
        assert (await seeded_store.get("items", "a"))["balance"] == "7.5"

    async def test_failed_batch_leaves_no_trace(self, seeded_store):
        before = seeded_store.dump()
        batch = seeded_store.batch()
        batch.create("items", "d", {"name": "delta"})
        batch.increment("items", "a", "balance", "5")
        batch.create("items", "a", {"name": "duplicate"})

        with pytest.raises(DuplicateError):
            await seeded_store.commit(batch)
        assert seeded_store.dump() == before

    async def test_update_missing_document(self, seeded_store):
        with pytest.raises(DocumentNotFoundError):
            await seeded_store.commit(seeded_store.batch().update("items", "zzz", {"x": 1}))

    async def test_delete_missing_document(self, seeded_store):
        with pytest.raises(DocumentNotFoundError):
            await seeded_store.commit(seeded_store.batch().delete("items", "zzz"))

    async def test_update_precondition(self, seeded_store):
        await seeded_store.commit(
            seeded_store.batch().update("items", "a", {"rank": 5}, expected={"rank": 2})
        )
        assert (await seeded_store.get("items", "a"))["rank"] == 5

        with pytest.raises(ConflictError):
            await seeded_store.commit(
                seeded_store.batch().update("items", "a", {"rank": 6}, expected={"rank": 2})
            )
        assert (await seeded_store.get("items", "a"))["rank"] == 5

    async def test_guarded_set(self, seeded_store):
        await seeded_store.commit(
            seeded_store.batch().set("items", "a", {"name": "new", "rank": 7}, expected={"rank": 2})
        )
        with pytest.raises(ConflictError):
            await seeded_store.commit(
                seeded_store.batch().set("items", "a", {"name": "newer"}, expected={"rank": 2})
            )
        with pytest.raises(DocumentNotFoundError):
            await seeded_store.commit(
                seeded_store.batch().set("items", "zzz", {"name": "x"}, expected={"rank": 2})
            )
        assert await seeded_store.get("items", "a") == {"name": "new", "rank": 7, "id": "a"}

    async def test_guarded_delete(self, seeded_store):
        with pytest.raises(ConflictError):
            await seeded_store.commit(seeded_store.batch().delete("items", "b", expected={"rank": 9}))
        assert await seeded_store.get("items", "b") is not None

        await seeded_store.commit(seeded_store.batch().delete("items", "b", expected={"rank": 1}))
        assert await seeded_store.get("items", "b") is None

    async def test_set_overwrites(self, seeded_store):
        await seeded_store.commit(seeded_store.batch().set("items", "a", {"name": "new"}))
        assert await seeded_store.get("items", "a") == {"name": "new", "id": "a"}

    async def test_commit_count(self, seeded_store):
        count = seeded_store.commit_count
        await seeded_store.commit(seeded_store.batch().delete("items", "b"))
        assert seeded_store.commit_count == count + 1
