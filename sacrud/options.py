# -*- coding: utf-8 -*-
"""
Controller configuration

A ResourceOptions instance is created once per controller and never modified.
Hooks are async functions that receive the working value(s) and return them,
they're executed sequentially in the configured order:

    async def stamp_owner(ctx, store, instance, is_creating):
        if is_creating:
            instance.owner_id = ctx.state["user_id"]
        return instance

    options = ResourceOptions(pre_save=(stamp_owner,))
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple, Type

# hook signatures, ctx is a sacrud.context.RequestContext and store a sacrud.store.Store
AfterLoadHook = Callable[[Any, list], Awaitable[list]]
SaveHook = Callable[[Any, Any, Any, bool], Awaitable[Any]]
PreDeleteHook = Callable[[Any, Any, list], Awaitable[list]]
PostDeleteHook = Callable[[Any, Any, list], Awaitable[None]]


@dataclass(frozen=True)
class RelationshipDescriptor:
    """
    :param target: mapped class of the related instances
    :param is_to_many: True for one-to-many and many-to-many relationships
    :param primary_keys: primary key attribute names of the target
    """

    target: Type[Any]
    is_to_many: bool
    primary_keys: Tuple[str, ...] = ()


def _no_scope(ctx: Any) -> Dict[str, Any]:
    return {}


def _no_populate(ctx: Any, is_many: bool) -> Sequence[str]:
    return ()


async def _no_preload(ctx: Any, store: Any) -> Optional[Any]:
    return None


async def _passthrough_body(ctx: Any, store: Any, body: Any, is_creating: bool) -> Any:
    return body


@dataclass(frozen=True)
class ResourceOptions:
    """
    :param for_all_resources: ctx => field equality map applied to every query and write (scope limitation)
    :param searchable_fields: fields that can be filtered with query parameters
    :param searchable_field_value_converter: field => function rewriting the raw query value
    :param order_by: default order, field => "asc"|"desc"
    :param resource_key_path: key path identifying one instance, e.g. ":id" or ":slug<name>"
    :param default_populate: (ctx, is_many) => relationship names loaded when `populate` isn't requested
    :param load_resource_to_create: async (ctx, store) => instance to create_one onto, instead of a new one
    :param sanitize_input_body: async (ctx, store, body, is_creating) => body
    :param after_load: hooks applied to all loaded instances
    :param pre_save: hooks called before persisting
    :param post_save: hooks called after persisting, before the flush
    :param pre_delete: hooks that can alter the list of instances to delete
    :param post_delete: hooks called with the deleted instances, these should never raise
    :param replace_underscore_with_empty_key_path: read a "_" key path value as ""
    :param set_flag_distinct: request distinct rows in index, needed when populating to-many relationships
    :param relationships: relationship descriptors, derived from the mapper when None
    :param scopes: named scopes, selectable with the `scope` query parameter
    """

    for_all_resources: Callable[[Any], Mapping[str, Any]] = _no_scope
    searchable_fields: Tuple[str, ...] = ()
    searchable_field_value_converter: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)
    order_by: Mapping[str, str] = field(default_factory=dict)
    resource_key_path: str = ":id"
    default_populate: Callable[[Any, bool], Sequence[str]] = _no_populate
    load_resource_to_create: Callable[[Any, Any], Awaitable[Optional[Any]]] = _no_preload
    sanitize_input_body: Callable[[Any, Any, Any, bool], Awaitable[Any]] = _passthrough_body
    after_load: Tuple[AfterLoadHook, ...] = ()
    pre_save: Tuple[SaveHook, ...] = ()
    post_save: Tuple[SaveHook, ...] = ()
    pre_delete: Tuple[PreDeleteHook, ...] = ()
    post_delete: Tuple[PostDeleteHook, ...] = ()
    replace_underscore_with_empty_key_path: bool = False
    set_flag_distinct: bool = False
    relationships: Optional[Mapping[str, RelationshipDescriptor]] = None
    scopes: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
