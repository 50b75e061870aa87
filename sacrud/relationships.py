# -*- coding: utf-8 -*-

from typing import Any, Dict, Optional, Tuple, Type

from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm.interfaces import MANYTOMANY, ONETOMANY

from .options import RelationshipDescriptor


def _mapper(Model: Type[Any]) -> Optional[Any]:
    try:
        return sqla_inspect(Model)
    except NoInspectionAvailable:
        return None


def primary_key_names(Model: Type[Any]) -> Tuple[str, ...]:
    """
    :param Model: mapped class
    :return: attribute names of the primary key columns, in mapper order
    """
    mapper = _mapper(Model)
    if mapper is None:
        return ()
    return tuple(mapper.get_property_by_column(column).key for column in mapper.primary_key)


def column_names(Model: Type[Any]) -> Tuple[str, ...]:
    """
    :param Model: mapped class
    :return: attribute names of the mapped columns
    """
    mapper = _mapper(Model)
    if mapper is None:
        return ()
    return tuple(prop.key for prop in mapper.column_attrs)


def is_to_many(rel_prop: Any) -> bool:
    return rel_prop.direction in (ONETOMANY, MANYTOMANY) and bool(rel_prop.uselist)


def describe_relationships(Model: Type[Any]) -> Dict[str, RelationshipDescriptor]:
    """
    Create the relationship descriptors of a mapped class

    :param Model: mapped class
    :return: relationship name => RelationshipDescriptor
    """
    mapper = _mapper(Model)
    if mapper is None:
        return {}
    result = {}
    for rel_prop in mapper.relationships:
        target = rel_prop.mapper.class_
        result[rel_prop.key] = RelationshipDescriptor(
            target=target,
            is_to_many=is_to_many(rel_prop),
            primary_keys=primary_key_names(target),
        )
    return result
