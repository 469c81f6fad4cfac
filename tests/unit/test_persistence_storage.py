import pytest

from aiflow.config import AiflowConfig
from aiflow.exceptions import ConfigurationError, StorageError
from aiflow.persistence import (
    Filter,
    InMemoryStorage,
    PostgresStorage,
    SQLiteStorage,
    get_storage,
    open_storage,
)


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return SQLiteStorage(tmp_path / "aiflow.db")


@pytest.mark.asyncio
async def test_storage_crud(backend):
    inserted = await backend.insert("orders", [{"total": 10, "region": "north"}, {"total": 30, "region": "south"}])
    assert all(row["id"] and row["created_at"] for row in inserted)

    rows = await backend.select("orders", [Filter(field="total", operator="gte", value=20)])
    assert [row["region"] for row in rows] == ["south"]

    updated = await backend.update("orders", {"total": 99}, [Filter.eq("region", "north")])
    assert updated[0]["total"] == 99

    ordered = await backend.select("orders", order_by="total", descending=True, limit=1)
    assert ordered[0]["region"] == "north"

    await backend.upsert("orders", {"id": inserted[1]["id"], "total": 5})
    south = await backend.select("orders", [Filter.eq("region", "south")])
    assert south[0]["total"] == 5

    deleted = await backend.delete("orders", [Filter.eq("region", "north")])
    assert len(deleted) == 1
    assert len(await backend.select("orders")) == 1


@pytest.mark.asyncio
async def test_like_and_in_filters(backend):
    await backend.insert("items", [{"name": "Blue Widget"}, {"name": "red widget"}, {"name": "Gadget"}])
    like = await backend.select("items", [Filter(field="name", operator="like", value="%Widget")])
    ilike = await backend.select("items", [Filter(field="name", operator="ilike", value="%widget")])
    in_ = await backend.select("items", [Filter(field="name", operator="in", value=["Gadget"])])
    assert [r["name"] for r in like] == ["Blue Widget"]
    assert len(ilike) == 2
    assert [r["name"] for r in in_] == ["Gadget"]


@pytest.mark.asyncio
async def test_select_returns_copies(backend):
    await backend.insert("t", {"id": "a", "nested": {"x": 1}})
    row = (await backend.select("t"))[0]
    row["nested"]["x"] = 2
    assert (await backend.select("t"))[0]["nested"]["x"] == 1


@pytest.mark.asyncio
async def test_match_embeddings_scoped_by_user(backend):
    await backend.insert(
        "data_embeddings",
        [
            {"user_id": "u1", "vector_data": [1.0, 0.0], "metadata": {"content": "apples"}},
            {"user_id": "u1", "vector_data": [0.7, 0.7], "metadata": {"content": "pears"}},
            {"user_id": "u1", "vector_data": [0.0, 1.0], "metadata": {"content": "cars"}},
            {"user_id": "u2", "vector_data": [1.0, 0.0], "metadata": {"content": "secret"}},
        ],
    )
    matches = await backend.match_embeddings([1.0, 0.0], match_threshold=0.5, match_count=5, user_id="u1")
    assert [m.content for m in matches] == ["apples", "pears"]
    assert matches[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_string_equality_does_not_match_other_types(backend):
    await backend.insert("codes", [{"id": "a", "code": "1"}, {"id": "b", "code": 1}, {"id": "c", "code": "2"}])
    assert [r["id"] for r in await backend.select("codes", [Filter.eq("code", "1")])] == ["a"]
    assert [r["id"] for r in await backend.select("codes", [Filter.eq("code", 1)])] == ["b"]
    assert [r["id"] for r in await backend.select("codes", [Filter.eq("id", "c")])] == ["c"]


@pytest.mark.asyncio
async def test_equality_combines_with_other_filters(backend):
    await backend.insert(
        "orders",
        [
            {"region": "north", "total": 10},
            {"region": "north", "total": 40},
            {"region": "south", "total": 50},
        ],
    )
    rows = await backend.select(
        "orders", [Filter.eq("region", "north"), Filter(field="total", operator="gt", value=20)]
    )
    assert [r["total"] for r in rows] == [40]


@pytest.mark.asyncio
async def test_tables_do_not_share_rows(backend):
    await backend.insert("left", {"id": "x", "side": "left"})
    await backend.insert("right", {"id": "x", "side": "right"})
    assert [r["side"] for r in await backend.select("right", [Filter.eq("id", "x")])] == ["right"]


def test_sqlite_open_failure_is_a_storage_error(tmp_path):
    with pytest.raises(StorageError, match="Cannot open SQLite database"):
        SQLiteStorage(tmp_path / "missing" / "aiflow.db")


@pytest.mark.asyncio
async def test_sqlite_duplicate_insert_is_a_storage_error(tmp_path):
    storage = SQLiteStorage(tmp_path / "aiflow.db")
    await storage.insert("t", {"id": "a"})
    with pytest.raises(StorageError, match="SQLite write failed"):
        await storage.insert("t", {"id": "a"})
    assert len(await storage.select("t")) == 1


def test_open_storage_selects_backend(tmp_path):
    assert isinstance(open_storage(None), InMemoryStorage)
    assert isinstance(open_storage(f"sqlite://{tmp_path / 'x.db'}"), SQLiteStorage)
    assert isinstance(open_storage("postgresql://localhost/aiflow"), PostgresStorage)
    with pytest.raises(ConfigurationError, match="Unsupported database backend"):
        open_storage("mongodb://localhost")


def test_get_storage_reads_database_url_from_config(tmp_path):
    storage = get_storage(AiflowConfig(database_url=f"sqlite://{tmp_path / 'x.db'}"))
    assert isinstance(storage, SQLiteStorage)
    assert get_storage() is storage


def test_get_storage_honours_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("AIFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    storage = get_storage()
    assert isinstance(storage, SQLiteStorage)
    assert storage.db_path == str(tmp_path / "env.db")


def test_get_storage_defaults_to_memory():
    assert isinstance(get_storage(), InMemoryStorage)
