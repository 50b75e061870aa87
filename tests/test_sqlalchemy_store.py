import datetime

import pytest
from sqlalchemy import func, select

from sacrud.errors import QueryMalformed, ResourceAlreadyExists, UpdateMalformed
from sacrud.options import RelationshipDescriptor
from sacrud.store import SQLAlchemyStore, compile_order, compile_where

from .models import Tag, Todo, TodoItem


async def _titles(store, where, order_by=None, **kwargs):
    items, count = await store.find_and_count(Todo, where, limit=100, offset=0, order_by=order_by or {"id": "asc"}, **kwargs)
    return [item.title for item in items], count


def test_compile_where_unknown_field() -> None:
    with pytest.raises(QueryMalformed) as exc_info:
        compile_where(Todo, {"nope": 1})
    assert exc_info.value.resource == "todo"
    with pytest.raises(QueryMalformed):
        compile_where(Todo, {"$and": [{"nope": {"in": [1]}}]})


def test_compile_where_relationship_is_not_a_field() -> None:
    with pytest.raises(QueryMalformed):
        compile_where(Todo, {"items": 1})


def test_compile_where_invalid_value() -> None:
    with pytest.raises(QueryMalformed):
        compile_where(Todo, {"status": {"gt": "abc"}})


def test_compile_order() -> None:
    assert len(compile_order(Todo, {"title": "asc", "id": "desc"})) == 2
    with pytest.raises(QueryMalformed):
        compile_order(Todo, {"unknown": "asc"})
    with pytest.raises(QueryMalformed):
        compile_order(Todo, {"id": "up"})


@pytest.mark.asyncio
async def test_find_and_count_operators(session, seed) -> None:
    await seed(
        Todo(title="a", status=1, owner_id=7),
        Todo(title="b", status=2, owner_id=7),
        Todo(title="c", status=3, owner_id=None),
        Todo(title="ab", status=4, owner_id=8),
    )
    store = SQLAlchemyStore(session)

    assert await _titles(store, {"status": {"in": [1, 2, 3]}}) == (["a", "b", "c"], 3)
    assert await _titles(store, {"status": {"gte": "2", "lte": "3"}}) == (["b", "c"], 2)
    assert await _titles(store, {"status": {"gt": 3}}) == (["ab"], 1)
    assert await _titles(store, {"status": {"lt": "2"}}) == (["a"], 1)
    assert await _titles(store, {"title": {"like": "a%"}}) == (["a", "ab"], 2)
    assert await _titles(store, {"owner_id": {"eq": None}}) == (["c"], 1)
    assert await _titles(store, {"owner_id": {"ne": None}}) == (["a", "b", "ab"], 3)
    assert await _titles(store, {"owner_id": None}) == (["c"], 1)
    assert await _titles(store, {"owner_id": {"ne": 7}}) == (["ab"], 1)
    assert await _titles(store, {"owner_id": 7, "$and": [{"status": {"in": ["2", "4"]}}]}) == (["b"], 1)
    assert await _titles(store, {"$and": []}) == (["a", "b", "c", "ab"], 4)


@pytest.mark.asyncio
async def test_find_and_count_page_and_order(session, seed) -> None:
    await seed(*[Todo(title=name) for name in ("b", "a", "b", "a", "c")])
    store = SQLAlchemyStore(session)

    items, count = await store.find_and_count(Todo, {}, limit=2, offset=1, order_by={"title": "asc", "id": "desc"})
    assert count == 5
    assert [(item.title, item.id) for item in items] == [("a", 2), ("b", 3)]

    items, count = await store.find_and_count(Todo, {}, limit=10, offset=0, distinct=True)
    assert count == 5
    assert len(items) == 5


@pytest.mark.asyncio
async def test_find_and_count_dt_values(session, seed) -> None:
    await seed(
        Todo(title="before", created_at=datetime.datetime(2023, 11, 14, 22, 0)),
        Todo(title="after", created_at=datetime.datetime(2023, 11, 15, 0, 0)),
    )
    store = SQLAlchemyStore(session)
    assert await _titles(store, {"created_at": {"gt": "2023-11-14T22:13:20.000Z"}}) == (["after"], 1)


@pytest.mark.asyncio
async def test_find_one_populate(session, seed) -> None:
    await seed(Todo(title="t", items=[TodoItem(label="x"), TodoItem(label="y")]))
    store = SQLAlchemyStore(session)

    todo = await store.find_one(Todo, {"title": "t"}, populate=["items", "items.todo"], cache_ttl=200)
    assert [item.label for item in todo.items] == ["x", "y"]
    assert todo.items[0].todo is todo

    assert await store.find_one(Todo, {"title": "nope"}) is None
    with pytest.raises(QueryMalformed):
        await store.find_one(Todo, {}, populate=["owner"])


@pytest.mark.asyncio
async def test_load_collection(session, seed) -> None:
    await seed(Todo(title="t", items=[TodoItem(label="x")]))
    store = SQLAlchemyStore(session)

    todo = await store.find_one(Todo, {"title": "t"})
    items = await store.load_collection(todo, "items")
    assert [item.label for item in items] == ["x"]


@pytest.mark.asyncio
async def test_create_and_assign(session) -> None:
    store = SQLAlchemyStore(session)
    todo = store.create(Todo, {"title": "t", "status": "3", "done": "true", "created_at": "2023-11-14T22:13:20.000Z", "unknown": 1})
    assert todo.status == 3
    assert todo.done is True
    assert todo.created_at == datetime.datetime(2023, 11, 14, 22, 13, 20)

    store.assign(todo, {"items": [{"label": "x"}, TodoItem(label="y")]})
    assert [item.label for item in todo.items] == ["x", "y"]

    with pytest.raises(UpdateMalformed):
        store.assign(todo, {"status": "many"})
    with pytest.raises(UpdateMalformed):
        store.assign(todo, {"items": {"label": "z"}})


@pytest.mark.asyncio
async def test_transactional_commits(session, sessionmaker) -> None:
    store = SQLAlchemyStore(session)

    async def create(store):
        todo = store.create(Todo, {"title": "t"})
        await store.persist(todo)
        await store.flush()
        return todo

    todo = await store.transactional(create)
    assert todo.id is not None

    async with sessionmaker() as other:
        assert await other.scalar(select(func.count()).select_from(Todo)) == 1


@pytest.mark.asyncio
async def test_transactional_rolls_back(session, sessionmaker) -> None:
    store = SQLAlchemyStore(session)

    async def create(store):
        await store.persist(store.create(Todo, {"title": "t"}))
        await store.flush()
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        await store.transactional(create)

    async with sessionmaker() as other:
        assert await other.scalar(select(func.count()).select_from(Todo)) == 0


@pytest.mark.asyncio
async def test_unique_violation(session, seed) -> None:
    await seed(Tag(name="x"))
    store = SQLAlchemyStore(session)

    async def create(store):
        await store.persist(store.create(Tag, {"name": "x"}))
        await store.flush()

    with pytest.raises(ResourceAlreadyExists) as exc_info:
        await store.transactional(create)
    assert exc_info.value.resource == "tag"


@pytest.mark.asyncio
async def test_remove(session, seed) -> None:
    await seed(Todo(title="t", items=[TodoItem(label="x")]))
    store = SQLAlchemyStore(session)

    async def delete(store):
        todo = await store.find_one(Todo, {"title": "t"})
        await store.remove(todo)
        await store.flush()

    await store.transactional(delete)
    assert await session.scalar(select(func.count()).select_from(TodoItem)) == 0


@pytest.mark.asyncio
async def test_keys_and_metadata(session, seed) -> None:
    await seed(Todo(title="t"))
    store = SQLAlchemyStore(session)
    todo = await store.find_one(Todo, {"title": "t"})

    assert store.composite_key(todo) == (todo.id,)
    assert store.payload_key(Todo, {"id": str(todo.id), "title": "x"}) == (todo.id,)
    assert store.payload_key(Todo, {"title": "x"}) == (None,)
    assert store.payload_key(Todo, {"id": "abc"}) == (None,)

    assert store.lookup_by_primary_key(Todo, {"id": todo.id}) is todo
    assert store.lookup_by_primary_key(Todo, {"id": todo.id + 1}) is None
    assert store.lookup_by_primary_key(Todo, {}) is None

    assert store.relationship_metadata(Todo, "items") == RelationshipDescriptor(target=TodoItem, is_to_many=True, primary_keys=("id",))
    assert store.relationship_metadata(TodoItem, "todo") == RelationshipDescriptor(target=Todo, is_to_many=False, primary_keys=("id",))
    assert store.relationship_metadata(Todo, "title") is None
