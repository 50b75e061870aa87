# sacrud to json encoding

import datetime
import decimal
import json
from typing import Any, Dict, Optional, Sequence
from uuid import UUID

from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import NoInspectionAvailable

import sacrud
from .config import is_debug


def _populate_tree(populate: Optional[Sequence[str]]) -> Dict[str, Any]:
    """
    ["books", "books.author", "owner"] => {"books": {"author": {}}, "owner": {}}
    """
    tree: Dict[str, Any] = {}
    for path in populate or []:
        node = tree
        for name in path.split("."):
            node = node.setdefault(name, {})
    return tree


def _encode_instance(instance: Any, tree: Dict[str, Any]) -> Dict[str, Any]:
    state = sqla_inspect(instance)
    mapper = state.mapper
    unloaded = state.unloaded
    result: Dict[str, Any] = {}
    for prop in mapper.column_attrs:
        # attributes that aren't loaded would need a query
        if prop.key in unloaded:
            continue
        result[prop.key] = getattr(instance, prop.key)
    for rel_name, subtree in tree.items():
        if rel_name not in mapper.relationships or rel_name in unloaded:
            continue
        value = getattr(instance, rel_name)
        if value is None:
            result[rel_name] = None
        elif mapper.relationships[rel_name].uselist:
            result[rel_name] = [_encode_instance(item, subtree) for item in value]
        else:
            result[rel_name] = _encode_instance(value, subtree)
    return result


def to_dict(instance: Any, populate: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """
    Serialize a mapped instance: the loaded column attributes plus the requested relationships

    :param instance: mapped instance
    :param populate: relationship names, dotted names serialize nested relationships
    :return: dict, the values are encoded by CrudJSONEncoder
    """
    return _encode_instance(instance, _populate_tree(populate))


class CrudJSONEncoder(json.JSONEncoder):
    """
    JSON encoding for mapped instances and common types
    """

    # pylint: disable=too-many-return-statements,method-hidden
    def default(self, obj):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serizlaized object
        """
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, datetime.datetime):
            return obj.isoformat()
        if isinstance(obj, (datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, set):
            return list(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, decimal.Decimal):
            return float(obj)
        if isinstance(obj, bytes):
            if obj == b"":
                return ""
            sacrud.log.debug("CrudJSONEncoder: serializing bytes obj")
            return obj.hex()
        try:
            return to_dict(obj)
        except NoInspectionAvailable:
            pass

        if not is_debug():
            sacrud.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
            return {"error": "CrudJSONEncoder invalid object"}
        return str(obj)
