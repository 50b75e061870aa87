# -*- coding: utf-8 -*-
"""
To-many collection reconciliation

When an update payload contains a list for a to-many relationship, the list is
diffed against the collection loaded from the database. Elements are matched by
the composite primary key of the target type:

- matched elements are updated with the payload element
- payload elements without a match are created
- existing elements without a match are removed

The mutations themselves are performed by the controller through the store.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple
from .options import RelationshipDescriptor


@dataclass
class Reconciliation:
    """
    Partition of an existing collection and an incoming payload list

    every existing instance is in exactly one of to_update/to_remove,
    every payload element is in exactly one of to_update/to_create
    """

    to_update: List[Tuple[Any, Dict[str, Any]]] = field(default_factory=list)
    to_create: List[Dict[str, Any]] = field(default_factory=list)
    to_remove: List[Any] = field(default_factory=list)


def payload_key(element: Mapping[str, Any], primary_keys: Sequence[str]) -> Tuple[Any, ...]:
    """
    :param element: payload element
    :param primary_keys: primary key field names of the target type
    :return: composite key built from the primary key fields of the element
    """
    return tuple(element.get(pk) for pk in primary_keys)


def reconcile(
    existing: Iterable[Any],
    payload: Sequence[Mapping[str, Any]],
    identity: Callable[[Any], Hashable],
    payload_identity: Callable[[Mapping[str, Any]], Hashable],
) -> Reconciliation:
    """
    Diff an existing collection against a payload list

    :param existing: instances currently in the collection
    :param payload: list of payload elements (dicts)
    :param identity: instance => composite key
    :param payload_identity: payload element => composite key
    :return: Reconciliation
    """
    result = Reconciliation()
    by_key: Dict[Hashable, Any] = {}
    removal_candidates: Dict[Hashable, Any] = {}
    for instance in existing:
        key = identity(instance)
        by_key[key] = instance
        removal_candidates[key] = instance

    for element in payload:
        key = payload_identity(element)
        found = by_key.get(key) if not _incomplete(key) else None
        if found is not None:
            # a key repeated in the payload updates the same instance again
            result.to_update.append((found, dict(element)))
            removal_candidates.pop(key, None)
        else:
            result.to_create.append(dict(element))

    result.to_remove = list(removal_candidates.values())
    return result


def _incomplete(key: Hashable) -> bool:
    if isinstance(key, tuple):
        return any(part is None for part in key)
    return key is None


def is_reconcilable(current_value: Any, payload_value: Any, descriptor: Optional[RelationshipDescriptor]) -> bool:
    """
    Reconciliation only applies when the field is a to-many relationship with a known
    composite key and the payload holds a list, otherwise the value is assigned as a whole

    :param current_value: current attribute value of the instance
    :param payload_value: payload value for the attribute
    :param descriptor: relationship descriptor for the attribute, if any
    """
    if descriptor is None or not descriptor.is_to_many or not descriptor.primary_keys:
        return False
    if not isinstance(payload_value, list):
        return False
    # to-many collections are lists or other non-string iterables
    return current_value is not None and not isinstance(current_value, (str, bytes, dict)) and hasattr(current_value, "__iter__")
