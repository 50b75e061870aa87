# -*- coding: utf-8 -*-
"""
Persistence for the CRUD controllers

The controllers express their queries as plain where-clauses:

    {
        "organization_id": 3,                       # equality
        "$and": [
            {"status": {"in": [1, 2]}},             # operator predicates
            {"created_at": {"gte": "...", "lte": "..."}},
        ],
    }

A Store executes them. SQLAlchemyStore implements the Store protocol with an
SQLAlchemy AsyncSession, one store (and session) is used per request.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Hashable, List, Mapping, Optional, Protocol, Sequence, Tuple, Type, TypeVar

from sqlalchemy import and_, func, select
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.util import identity_key

import sacrud
from .attr_parse import parse_attr
from .config import is_debug
from .errors import QueryMalformed, ResourceAlreadyExists, UpdateMalformed
from .options import RelationshipDescriptor
from .relationships import describe_relationships, primary_key_names

T = TypeVar("T")

AND_KEY = "$and"
OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "like", "in")


def resource_name(Model: Type[Any]) -> str:
    return str(getattr(Model, "__tablename__", Model.__name__))


class Store(Protocol):
    """
    Persistence operations used by sacrud.controller.CrudController
    """

    async def find_one(
        self, Model: Type[Any], where: Mapping[str, Any], populate: Optional[Sequence[str]] = None, cache_ttl: Optional[int] = None
    ) -> Optional[Any]: ...

    async def find_and_count(
        self,
        Model: Type[Any],
        where: Mapping[str, Any],
        limit: int,
        offset: int,
        order_by: Optional[Mapping[str, str]] = None,
        populate: Optional[Sequence[str]] = None,
        distinct: bool = False,
    ) -> Tuple[List[Any], int]: ...

    def create(self, Model: Type[Any], data: Optional[Mapping[str, Any]] = None) -> Any: ...

    def assign(self, instance: Any, data: Mapping[str, Any]) -> Any: ...

    async def persist(self, instance: Any) -> None: ...

    async def remove(self, instance: Any) -> None: ...

    async def flush(self) -> None: ...

    async def transactional(self, fn: Callable[[Any], Awaitable[T]]) -> T: ...

    async def load_collection(self, instance: Any, field_name: str) -> Any: ...

    def add_to_collection(self, instance: Any, field_name: str, item: Any) -> None: ...

    def remove_from_collection(self, instance: Any, field_name: str, item: Any) -> None: ...

    def composite_key(self, instance: Any) -> Hashable: ...

    def payload_key(self, Model: Type[Any], element: Mapping[str, Any]) -> Hashable: ...

    def lookup_by_primary_key(self, Model: Type[Any], key_fields: Mapping[str, Any]) -> Optional[Any]: ...

    def relationship_metadata(self, Model: Type[Any], field_name: str) -> Optional[RelationshipDescriptor]: ...


def _column_property(Model: Type[Any], name: str) -> Any:
    mapper = sqla_inspect(Model)
    prop = mapper.column_attrs.get(name)
    if prop is None:
        raise QueryMalformed(resource_name(Model), f'Unknown field "{name}"')
    return prop


def _coerce(Model: Type[Any], column: Any, value: Any) -> Any:
    try:
        return parse_attr(column, value)
    except (TypeError, ValueError) as exc:
        raise QueryMalformed(resource_name(Model), f'Invalid value {value!r} for "{column.key}": {exc}')


def _compile_op(Model: Type[Any], prop: Any, op: str, operand: Any) -> Any:
    attr = getattr(Model, prop.key)
    column = prop.columns[0]
    if op in ("eq", "ne") and operand is None:
        return attr.is_(None) if op == "eq" else attr.is_not(None)
    if op == "like":
        return attr.like(str(operand))
    if op == "in":
        if not isinstance(operand, (list, tuple, set)):
            operand = [operand]
        return attr.in_([_coerce(Model, column, item) for item in operand])
    value = _coerce(Model, column, operand)
    if op == "eq":
        return attr == value
    if op == "ne":
        return attr != value
    if op == "gt":
        return attr > value
    if op == "gte":
        return attr >= value
    if op == "lt":
        return attr < value
    if op == "lte":
        return attr <= value
    raise QueryMalformed(resource_name(Model), f'Unknown operator "{op}"')


def _is_predicate(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(key in OPERATORS for key in value)


def compile_where(Model: Type[Any], where: Mapping[str, Any]) -> List[Any]:
    """
    Compile a where-clause to SQLAlchemy expressions

    :param Model: mapped class
    :param where: where-clause, cfr. the module docstring
    :return: list of expressions, to be AND-ed
    """
    expressions = []
    for key, value in where.items():
        if key == AND_KEY:
            nested = []
            for fragment in value or []:
                nested.extend(compile_where(Model, fragment))
            if nested:
                expressions.append(and_(*nested))
            continue
        prop = _column_property(Model, key)
        if _is_predicate(value):
            for op, operand in value.items():
                expressions.append(_compile_op(Model, prop, op, operand))
        else:
            expressions.append(_compile_op(Model, prop, "eq", value))
    return expressions


def compile_order(Model: Type[Any], order_by: Optional[Mapping[str, str]]) -> List[Any]:
    """
    :param Model: mapped class
    :param order_by: field name => "asc"|"desc"
    :return: list of SQLAlchemy order_by expressions
    """
    result = []
    for name, direction in (order_by or {}).items():
        prop = _column_property(Model, name)
        attr = getattr(Model, prop.key)
        if str(direction).lower() == "asc":
            result.append(attr.asc())
        elif str(direction).lower() == "desc":
            result.append(attr.desc())
        else:
            raise QueryMalformed(resource_name(Model), f'Invalid order direction "{direction}" for "{name}"')
    return result


def compile_populate(Model: Type[Any], populate: Optional[Sequence[str]]) -> List[Any]:
    """
    Create selectinload options for the requested relationships, dotted names load nested relationships

    :param Model: mapped class
    :param populate: relationship names, e.g. ["books", "books.author"]
    :return: list of loader options
    """
    options = []
    for path in populate or []:
        current_cls = Model
        option = None
        for rel_name in path.split("."):
            rel_prop = sqla_inspect(current_cls).relationships.get(rel_name)
            if rel_prop is None:
                raise QueryMalformed(resource_name(Model), f'Invalid populate "{path}", unknown relationship "{rel_name}"')
            rel_attr = getattr(current_cls, rel_name)
            option = option.selectinload(rel_attr) if option is not None else selectinload(rel_attr)
            current_cls = rel_prop.mapper.class_
        if option is not None:
            options.append(option)
    return options


class SQLAlchemyStore:
    """
    Store implementation for an SQLAlchemy AsyncSession
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_one(
        self, Model: Type[Any], where: Mapping[str, Any], populate: Optional[Sequence[str]] = None, cache_ttl: Optional[int] = None
    ) -> Optional[Any]:
        """
        :param cache_ttl: cache hint, SQLAlchemy doesn't cache results so it's not used
        """
        stmt = select(Model).where(*compile_where(Model, where)).options(*compile_populate(Model, populate)).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_and_count(
        self,
        Model: Type[Any],
        where: Mapping[str, Any],
        limit: int,
        offset: int,
        order_by: Optional[Mapping[str, str]] = None,
        populate: Optional[Sequence[str]] = None,
        distinct: bool = False,
    ) -> Tuple[List[Any], int]:
        expressions = compile_where(Model, where)
        base = select(Model).where(*expressions)
        if distinct:
            base = base.distinct()
        count = await self.session.scalar(select(func.count()).select_from(base.subquery()))

        stmt = base.options(*compile_populate(Model, populate)).order_by(*compile_order(Model, order_by))
        stmt = stmt.offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), int(count or 0)

    def create(self, Model: Type[Any], data: Optional[Mapping[str, Any]] = None) -> Any:
        instance = Model()
        if data:
            self.assign(instance, data)
        return instance

    def _related_value(self, rel_prop: Any, value: Any) -> Any:
        target = rel_prop.mapper.class_
        if rel_prop.uselist:
            if not isinstance(value, (list, tuple)):
                raise UpdateMalformed(resource_name(rel_prop.parent.class_), f'"{rel_prop.key}" expects a list')
            return [self.create(target, item) if isinstance(item, Mapping) else item for item in value]
        if isinstance(value, Mapping):
            return self.create(target, value)
        return value

    def assign(self, instance: Any, data: Mapping[str, Any]) -> Any:
        """
        Assign the payload values to the instance attributes, values are converted to the column types
        and nested dicts are instantiated as related objects. Unknown keys are ignored.
        """
        Model = type(instance)
        mapper = sqla_inspect(Model)
        for key, value in data.items():
            column_prop = mapper.column_attrs.get(key)
            if column_prop is not None:
                try:
                    value = parse_attr(column_prop.columns[0], value)
                except (TypeError, ValueError) as exc:
                    raise UpdateMalformed(resource_name(Model), f'Invalid value {value!r} for "{key}": {exc}')
                setattr(instance, key, value)
                continue
            rel_prop = mapper.relationships.get(key)
            if rel_prop is not None:
                setattr(instance, key, self._related_value(rel_prop, value))
                continue
            sacrud.log.debug(f"{resource_name(Model)}: ignoring unknown attribute {key}")
        return instance

    async def persist(self, instance: Any) -> None:
        self.session.add(instance)

    async def remove(self, instance: Any) -> None:
        await self.session.delete(instance)

    async def flush(self) -> None:
        involved = {resource_name(type(obj)) for obj in list(self.session.new) + list(self.session.dirty)}
        try:
            await self.session.flush()
        except IntegrityError as exc:
            message = str(exc.orig)
            if "unique" not in message.lower() and "duplicate" not in message.lower():
                raise
            detail = message if is_debug() else "uniqueness constraint violated"
            raise ResourceAlreadyExists(", ".join(sorted(involved)), detail)

    async def transactional(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run `fn(self)` atomically: everything is rolled back if it raises.
        A savepoint is used when the session is already in a transaction, the
        outer transaction is committed by whoever started it.
        """
        if self.session.in_transaction():
            async with self.session.begin_nested():
                return await fn(self)
        async with self.session.begin():
            return await fn(self)

    async def load_collection(self, instance: Any, field_name: str) -> Any:
        """
        :return: the relationship collection, loaded from the db if it wasn't loaded yet
        """
        if field_name in sqla_inspect(instance).unloaded:
            await self.session.refresh(instance, attribute_names=[field_name])
        return getattr(instance, field_name)

    def add_to_collection(self, instance: Any, field_name: str, item: Any) -> None:
        getattr(instance, field_name).append(item)

    def remove_from_collection(self, instance: Any, field_name: str, item: Any) -> None:
        getattr(instance, field_name).remove(item)

    def composite_key(self, instance: Any) -> Hashable:
        return tuple(getattr(instance, name) for name in primary_key_names(type(instance)))

    def payload_key(self, Model: Type[Any], element: Mapping[str, Any]) -> Hashable:
        """
        :return: composite key of a payload element, the values are converted to the key column types
        """
        mapper = sqla_inspect(Model)
        key = []
        for name in primary_key_names(Model):
            try:
                value = parse_attr(mapper.column_attrs[name].columns[0], element.get(name))
            except (TypeError, ValueError):
                value = None
            key.append(value)
        return tuple(key)

    def lookup_by_primary_key(self, Model: Type[Any], key_fields: Mapping[str, Any]) -> Optional[Any]:
        """
        Find an instance in the session identity map, no query is emitted

        :param key_fields: primary key attribute name => value
        """
        key = self.payload_key(Model, key_fields)
        if any(part is None for part in key):
            return None
        return self.session.sync_session.identity_map.get(identity_key(Model, key))

    def relationship_metadata(self, Model: Type[Any], field_name: str) -> Optional[RelationshipDescriptor]:
        return describe_relationships(Model).get(field_name)
