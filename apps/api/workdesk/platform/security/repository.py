from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import false, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from workdesk.platform.errors import NotFoundError
from workdesk.platform.security.context import Actor


ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """Tenant-scoped access to one model. Rows outside the actor's company do not exist."""

    resource = ""
    entity = ""
    model: type[ModelT]

    def apply_scope_query(self, query: Select[Any], actor: Actor) -> Select[Any]:
        if actor.company_id is None:
            return query.where(false())
        return query.where(self.model.company_id == actor.company_id)  # type: ignore[attr-defined]

    def find(self, session: Session, actor: Actor, entity_id: uuid.UUID) -> ModelT | None:
        query = self.apply_scope_query(select(self.model), actor).where(
            self.model.id == entity_id  # type: ignore[attr-defined]
        )
        return session.scalar(query.execution_options(populate_existing=True))

    def get(self, session: Session, actor: Actor, entity_id: uuid.UUID) -> ModelT:
        row = self.find(session, actor, entity_id)
        if row is None:
            raise NotFoundError(self.entity, entity_id)
        return row

    def list(self, session: Session, actor: Actor, *conditions: Any, limit: int = 100, offset: int = 0) -> list[ModelT]:
        query = self.apply_scope_query(select(self.model), actor)
        if conditions:
            query = query.where(*conditions)
        order_column = getattr(self.model, "created_at", None)
        if order_column is not None:
            query = query.order_by(order_column.desc())
        return list(session.scalars(query.limit(limit).offset(offset)))
