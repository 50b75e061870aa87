# -*- coding: utf-8 -*-
"""
FastAPI routing for CrudControllers

    app = FastAPI()
    engine = create_async_engine("sqlite+aiosqlite:///todo.db")
    api = CrudFastAPI(app, async_sessionmaker(engine, expire_on_commit=False), prefix="/api")
    api.expose_controller(CrudController(Todo, "todo"), "/todo")

registers

    GET    /api/todo          index
    POST   /api/todo          create_one
    GET    /api/todo/{id}     get_one
    POST   /api/todo/{id}     update_one
    DELETE /api/todo/{id}     delete_one
"""
import json
import re
from http import HTTPStatus
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends as FastAPIDepends, FastAPI, Request, Response
from fastapi.params import Depends as DependsParam
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.ext.asyncio import async_sessionmaker

import sacrud
from sacrud.context import RequestContext
from sacrud.controller import CrudController
from sacrud.errors import CrudError
from sacrud.json_encoder import to_dict
from sacrud.store import SQLAlchemyStore

from .responses import CrudJSONResponse

_PARAM_TOKEN_RE = re.compile(r":(\w+)(\([^)]*\))?")


def fastapi_path(route_path: str) -> str:
    """
    Convert a controller route template to a FastAPI path, e.g. "/:org(\\d+)/:slug" => "/{org}/{slug}"
    The parameter patterns are checked by the controller.
    """
    return _PARAM_TOKEN_RE.sub(lambda match: "{" + match.group(1) + "}", route_path)


def install_crud_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CrudError)
    async def _crud_error_handler(_request: Request, exc: CrudError):
        return CrudJSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def _query_dict(request: Request) -> Dict[str, Any]:
    # repeated query parameters become lists
    result: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        result[key] = values[0] if len(values) == 1 else values
    return result


async def _parse_body(request: Request) -> Any:
    """
    :return: the decoded JSON body, the raw text if it isn't valid JSON and None if there's no body
    """
    raw = await request.body()
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        sacrud.log.debug(f"Request body is not JSON: {text[:100]}")
        return text


def _default_state(request: Request) -> Dict[str, Any]:
    return dict(request.scope.get("state") or {})


class CrudFastAPI:
    def __init__(
        self,
        app: FastAPI,
        sessionmaker: async_sessionmaker,
        prefix: str = "",
        dependencies: Optional[List[Any]] = None,
        context_factory: Optional[Callable[[Request], Dict[str, Any]]] = None,
    ) -> None:
        """
        :param app: FastAPI app
        :param sessionmaker: async_sessionmaker, every request uses its own session
        :param prefix: url prefix of all exposed controllers
        :param dependencies: FastAPI dependencies added to every route (authentication etc.)
        :param context_factory: request => RequestContext.state, defaults to the request.state values
        """
        self.app = app
        self.sessionmaker = sessionmaker
        self.prefix = prefix.rstrip("/")
        self.context_factory = context_factory or _default_state
        self.default_dependencies = self._normalize_dependencies(dependencies)
        self.controllers: Dict[str, CrudController] = {}
        install_crud_exception_handlers(app)

    @staticmethod
    def _normalize_dependencies(dependencies: Optional[List[Any]]) -> List[DependsParam]:
        if not dependencies:
            return []
        normalized: List[DependsParam] = []
        for dependency in dependencies:
            if isinstance(dependency, DependsParam):
                normalized.append(dependency)
                continue
            if callable(dependency):
                normalized.append(FastAPIDepends(dependency))
                continue
            raise TypeError("dependencies items must be callables or fastapi.Depends(...) instances")
        return normalized

    async def _store_dependency(self) -> AsyncIterator[SQLAlchemyStore]:
        # the controllers commit their own write transactions, uncommitted reads are rolled back on close
        async with self.sessionmaker() as session:
            yield SQLAlchemyStore(session)

    async def _context(self, request: Request) -> RequestContext:
        return RequestContext(
            params=dict(request.path_params),
            query=_query_dict(request),
            body=await _parse_body(request),
            state=self.context_factory(request),
        )

    @staticmethod
    async def _ensure_loaded(store: SQLAlchemyStore, instance: Any) -> None:
        # expired by the commit (expire_on_commit=True) or never set before the insert
        state = sqla_inspect(instance)
        unloaded = [key for key in state.mapper.column_attrs.keys() if key in state.unloaded]
        if unloaded:
            await store.session.refresh(instance, attribute_names=unloaded)

    def expose_controller(self, controller: CrudController, mount: Optional[str] = None) -> None:
        """
        Register the five routes of a controller

        :param controller: CrudController
        :param mount: mount path, defaults to "/<resource name>"
        """
        mount = "/" + (mount if mount is not None else controller.resource_name).strip("/")
        collection_path = self.prefix + mount.rstrip("/")
        instance_path = collection_path + fastapi_path(controller.route_path)
        tag = controller.resource_name
        self.controllers[collection_path] = controller

        router = APIRouter(tags=[tag])
        store_dependency = FastAPIDepends(self._store_dependency)

        async def index(request: Request, store: SQLAlchemyStore = store_dependency):
            ctx = await self._context(request)
            result = await controller.index(ctx, store)
            populate = controller.populate_for(ctx, is_many=True)
            items = [to_dict(item, populate) for item in result["items"]]
            return CrudJSONResponse(content={"count": result["count"], "items": items})

        async def create_one(request: Request, store: SQLAlchemyStore = store_dependency):
            ctx = await self._context(request)
            instance = await controller.create_one(ctx, store)
            await self._ensure_loaded(store, instance)
            return CrudJSONResponse(status_code=HTTPStatus.CREATED.value, content=to_dict(instance))

        async def get_one(request: Request, store: SQLAlchemyStore = store_dependency):
            ctx = await self._context(request)
            instance = await controller.get_one(ctx, store)
            return CrudJSONResponse(content=to_dict(instance, controller.populate_for(ctx, is_many=False)))

        async def update_one(request: Request, store: SQLAlchemyStore = store_dependency):
            ctx = await self._context(request)
            instance = await controller.update_one(ctx, store)
            await self._ensure_loaded(store, instance)
            return CrudJSONResponse(content=to_dict(instance, controller.populate_for(ctx, is_many=False)))

        async def delete_one(request: Request, store: SQLAlchemyStore = store_dependency):
            ctx = await self._context(request)
            await controller.delete_one(ctx, store)
            return Response(status_code=HTTPStatus.NO_CONTENT.value)

        routes = [
            (collection_path, "GET", index, "index"),
            (collection_path, "POST", create_one, "createOne"),
            (instance_path, "GET", get_one, "getOne"),
            (instance_path, "POST", update_one, "updateOne"),
            (instance_path, "DELETE", delete_one, "deleteOne"),
        ]
        for path, method, endpoint, name in routes:
            router.add_api_route(
                path or "/",
                endpoint,
                methods=[method],
                response_class=CrudJSONResponse,
                summary=f"{name} {tag}",
                dependencies=self.default_dependencies,
                operation_id=f"{tag}_{name}",
            )
            sacrud.log.info(f"Exposing {tag}.{name}: {method} {path or '/'}")

        self.app.include_router(router)
        # If /docs was opened before exposing controllers, FastAPI may have cached OpenAPI already.
        self.app.openapi_schema = None
