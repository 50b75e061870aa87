#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Run:
  pip install -e ".[examples]"
  python examples/todo_app.py

Then try:
  curl -X POST -H "x-user: 1" -d '{"title": "groceries", "items": [{"label": "milk"}]}' http://127.0.0.1:8000/api/todo
  curl -H "x-user: 1" "http://127.0.0.1:8000/api/todo?status=\$in(0,1)&order=title%20asc&populate=items"
  open http://127.0.0.1:8000/docs
"""
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI
from sqlalchemy import ForeignKey, String
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from sacrud import CrudController, ResourceOptions
from sacrud.fastapi import CrudFastAPI


class Base(DeclarativeBase):
    pass


class Todo(Base):
    __tablename__ = "todo"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[int] = mapped_column(default=0)
    user_id: Mapped[int]
    items: Mapped[List["TodoItem"]] = relationship(back_populates="todo", cascade="all, delete-orphan")


class TodoItem(Base):
    __tablename__ = "todo_item"

    id: Mapped[int] = mapped_column(primary_key=True)
    todo_id: Mapped[int] = mapped_column(ForeignKey("todo.id"))
    label: Mapped[str] = mapped_column(default="")
    todo: Mapped[Todo] = relationship(back_populates="items")


def current_user(request):
    # replace with real authentication
    return {"user_id": int(request.headers.get("x-user", "0"))}


def create_app() -> FastAPI:
    engine = create_async_engine("sqlite+aiosqlite:///./todo_app.db")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield
        await engine.dispose()

    app = FastAPI(title="sacrud todo app", lifespan=lifespan)
    api = CrudFastAPI(app, async_sessionmaker(engine, expire_on_commit=False), prefix="/api", context_factory=current_user)
    api.expose_controller(
        CrudController(
            Todo,
            "todo",
            ResourceOptions(
                for_all_resources=lambda ctx: {"user_id": ctx.state["user_id"]},
                searchable_fields=("status", "title"),
                order_by={"id": "desc"},
            ),
        )
    )

    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok", "docs": "/docs", "openapi": "/openapi.json"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
