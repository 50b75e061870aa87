# -*- coding: utf-8 -*-
"""
CrudController: generic CRUD behavior for one mapped class

A controller is created once per resource:

    todo_controller = CrudController(Todo, "todo", ResourceOptions(
        for_all_resources=lambda ctx: {"owner_id": ctx.state["user_id"]},
        searchable_fields=("status", "title"),
        order_by={"updated_at": "desc"},
    ))

The five operations (index, create_one, get_one, update_one, delete_one) take a
RequestContext and a Store, the routing adapter (cfr. sacrud.fastapi.api)
supplies both for every request.
"""
import inspect
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

import sacrud
from .config import get_config
from .context import RequestContext
from .errors import BadControllerConfiguration, ResourceNotFound, UpdateMalformed
from .keypath import KeyPathEntry, normalize_key_path, resolve_key_path, route_template
from .options import RelationshipDescriptor, ResourceOptions
from .query_filters import parse_order, parse_page, parse_populate, where_clause_by_query, where_clause_by_scope
from .reconcile import is_reconcilable, reconcile
from .relationships import describe_relationships
from .store import Store


class CrudController:
    """
    Derives list/get/create/update/delete behavior from a mapped class and its ResourceOptions
    """

    def __init__(self, Model: Type[Any], resource_name: str, options: Optional[ResourceOptions] = None) -> None:
        """
        :param Model: mapped class
        :param resource_name: name used in errors and logs
        :param options: ResourceOptions, defaults are used when omitted
        :raises BadControllerConfiguration: if the key path can't be parsed
        """
        self.Model = Model
        self.resource_name = resource_name
        self.options = options or ResourceOptions()
        self.resolved_key_path = normalize_key_path(self.options.resource_key_path)
        self.key_path_entries: Tuple[KeyPathEntry, ...] = resolve_key_path(self.resolved_key_path, resource_name)
        self.route_path = route_template(self.resolved_key_path)
        if self.options.relationships is not None:
            self.relationships: Dict[str, RelationshipDescriptor] = dict(self.options.relationships)
        else:
            self.relationships = describe_relationships(Model)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.resource_name} {self.route_path}>"

    def route_map(self) -> Dict[str, Tuple[str, str]]:
        """
        :return: operation name => (http method, path), paths are relative to the mount point
        """
        return {
            "index": ("GET", "/"),
            "createOne": ("POST", "/"),
            "getOne": ("GET", self.route_path),
            "updateOne": ("POST", self.route_path),
            "deleteOne": ("DELETE", self.route_path),
        }

    def populate_for(self, ctx: RequestContext, is_many: bool) -> List[str]:
        """
        :return: the relationships requested with the `populate` query parameter, or the default population
        """
        populate = parse_populate(ctx.query.get("populate"))
        if populate is None:
            populate = list(self.options.default_populate(ctx, is_many))
        return populate

    # Operations

    async def create_one(self, ctx: RequestContext, store: Store) -> Any:
        """
        Create an instance from the request body, the scoping fields override the body values

        :param ctx: request context
        :param store: request store
        :return: the created instance
        """
        body = self._check_body(ctx.body)
        scope_fields = self.options.for_all_resources(ctx)

        async def create(store: Store) -> Any:
            instance = await self.options.load_resource_to_create(ctx, store)
            if instance is None:
                instance = store.create(self.Model)
            sanitized = await self.options.sanitize_input_body(ctx, store, body, True)
            store.assign(instance, {**(sanitized or {}), **scope_fields})

            validator = getattr(self.Model, "validate", None)
            if callable(validator):
                result = validator(instance)
                if inspect.isawaitable(result):
                    await result

            instance = await self._save(ctx, store, instance, is_creating=True)
            return instance

        return await store.transactional(create)

    async def get_one(self, ctx: RequestContext, store: Store) -> Any:
        """
        Load the instance addressed by the key path parameters

        :param ctx: request context
        :param store: request store
        :return: the instance
        :raises ResourceNotFound: when no instance matches
        """
        where = {**self._where_by_key_path(ctx), **self.options.for_all_resources(ctx)}
        populate = self.populate_for(ctx, is_many=False)

        sacrud.log.debug(f"{self.resource_name}: get_one where={where} populate={populate}")
        instance = await store.find_one(self.Model, where, populate=populate, cache_ttl=get_config("FIND_ONE_CACHE_TTL"))
        if instance is None:
            raise ResourceNotFound(self.resource_name, f"query={json.dumps(where, default=str)}")

        loaded = [instance]
        for hook in self.options.after_load:
            loaded = await hook(ctx, loaded)
        if len(loaded) != 1:
            raise BadControllerConfiguration(
                self.resource_name, "Internal hooks might not returned promised objects. Please check after_load hooks."
            )
        return instance

    async def update_one(self, ctx: RequestContext, store: Store) -> Any:
        """
        Update the instance addressed by the key path with the request body,
        to-many relationship lists in the body are reconciled with the stored collections

        :param ctx: request context
        :param store: request store
        :return: the updated instance
        """
        body = self._check_body(ctx.body)

        async def update(store: Store) -> Any:
            instance = await self.get_one(ctx, store)
            sanitized = await self.options.sanitize_input_body(ctx, store, body, False)
            instance = await self._apply_update_payload(store, instance, dict(sanitized or {}))
            return await self._save(ctx, store, instance, is_creating=False)

        return await store.transactional(update)

    async def delete_one(self, ctx: RequestContext, store: Store) -> None:
        """
        Delete the instance addressed by the key path, pre_delete hooks may extend the set of deleted instances

        :param ctx: request context
        :param store: request store
        """

        async def delete(store: Store) -> None:
            instance = await self.get_one(ctx, store)
            to_delete = [instance]
            for hook in self.options.pre_delete:
                to_delete = await hook(ctx, store, to_delete)

            flush_per_instance = get_config("DELETE_FLUSH_PER_INSTANCE")
            for item in to_delete:
                await store.remove(item)
                if flush_per_instance:
                    await store.flush()
            if not flush_per_instance:
                await store.flush()
            sacrud.log.debug(f"{self.resource_name}: deleted {len(to_delete)} instance(s)")

            for hook in self.options.post_delete:
                await hook(ctx, store, to_delete)

        await store.transactional(delete)

    async def index(self, ctx: RequestContext, store: Store) -> Dict[str, Any]:
        """
        List the instances matching the scope and the searchable field filters in the query

        :param ctx: request context
        :param store: request store
        :return: {"count": total number of matches, "items": the requested page}
        """
        query = ctx.query
        offset, page_size = parse_page(query, self.resource_name)
        populate = self.populate_for(ctx, is_many=True)

        fragments = where_clause_by_query(
            query, self.options.searchable_fields, self.options.searchable_field_value_converter, self.resource_name
        )
        # named scopes narrow the scoping fields, they never replace them
        scope = where_clause_by_scope(query, self.options.scopes, self.resource_name)
        fragments.extend({field_name: value} for field_name, value in scope.items())
        where = {**self.options.for_all_resources(ctx), "$and": fragments}
        order_by = self._order_by(query)
        sacrud.log.debug(f"{self.resource_name}: index where={where} order_by={order_by}")

        items, count = await store.find_and_count(
            self.Model,
            where,
            limit=page_size,
            offset=offset,
            order_by=order_by,
            populate=populate,
            distinct=self.options.set_flag_distinct,
        )
        for hook in self.options.after_load:
            items = await hook(ctx, items)
        return {"count": count, "items": items}

    # Helpers

    def _check_body(self, body: Any) -> Dict[str, Any]:
        if body is None or (not isinstance(body, dict) and not body):
            raise UpdateMalformed(self.resource_name, "Empty update body, nothing to update!")
        if not isinstance(body, dict):
            raise UpdateMalformed(self.resource_name, "expected JSON body.")
        return body

    def _where_by_key_path(self, ctx: RequestContext) -> Dict[str, Any]:
        where = {}
        for entry in self.key_path_entries:
            value = ctx.params.get(entry.param_name)
            if value is not None and not re.fullmatch(entry.pattern, value):
                raise ResourceNotFound(self.resource_name, f"{entry.param_name}={value!r} doesn't match {entry.pattern}")
            if self.options.replace_underscore_with_empty_key_path:
                value = "" if value in (None, "_") else value
            where[entry.column_name] = value
        return where

    def _order_by(self, query: Mapping[str, Any]) -> Dict[str, str]:
        order = query.get("order")
        if order:
            return parse_order(order, self.resource_name)
        return dict(self.options.order_by)

    async def _save(self, ctx: RequestContext, store: Store, instance: Any, is_creating: bool) -> Any:
        for hook in self.options.pre_save:
            instance = await hook(ctx, store, instance, is_creating)
        await store.persist(instance)
        for hook in self.options.post_save:
            instance = await hook(ctx, store, instance, is_creating)
        await store.flush()
        return instance

    async def _apply_update_payload(self, store: Store, instance: Any, payload: Dict[str, Any]) -> Any:
        """
        Reconcile the to-many relationship lists of the payload, the remaining fields are assigned as a whole
        """
        for key in list(payload):
            descriptor = self.relationships.get(key)
            if descriptor is None or not descriptor.is_to_many or not isinstance(payload[key], list):
                continue
            collection = await store.load_collection(instance, key)
            if not is_reconcilable(collection, payload[key], descriptor):
                continue
            elements = payload.pop(key)
            if not all(isinstance(element, Mapping) for element in elements):
                raise UpdateMalformed(self.resource_name, f'"{key}" expects a list of objects')
            result = reconcile(
                list(collection),
                elements,
                identity=store.composite_key,
                payload_identity=lambda element: store.payload_key(descriptor.target, element),
            )
            sacrud.log.debug(
                f"{self.resource_name}.{key}: update {len(result.to_update)}, "
                f"create {len(result.to_create)}, remove {len(result.to_remove)}"
            )
            for existing, element in result.to_update:
                store.assign(existing, element)
            for element in result.to_create:
                store.add_to_collection(instance, key, store.create(descriptor.target, element))
            for existing in result.to_remove:
                store.remove_from_collection(instance, key, existing)

        store.assign(instance, payload)
        return instance
