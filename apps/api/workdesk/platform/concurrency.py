from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import update
from sqlalchemy.orm import Session

from workdesk.core.config import get_settings
from workdesk.metrics import observe_optimistic_conflict
from workdesk.platform.errors import ConflictError


logger = logging.getLogger("workdesk.concurrency")

T = TypeVar("T")


def guarded_update(
    session: Session,
    model: type[Any],
    *,
    entity: str,
    entity_id: uuid.UUID,
    row_version: int,
    values: dict[str, Any],
) -> int:
    """Write ``values`` only if the row still carries ``row_version``.

    Returns the new row version. Raises ConflictError when another writer
    got there first; the caller's transaction is left for the caller to roll
    back.
    """

    result = session.execute(
        update(model)
        .where(model.id == entity_id, model.row_version == row_version)
        .values(**values, row_version=model.row_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(entity, entity_id)
    return row_version + 1


def run_with_retry(
    session: Session,
    operation: Callable[[int], T],
    *,
    entity: str,
    max_attempts: int | None = None,
) -> T:
    """Run a read-validate-write ``operation`` until it commits or attempts run out.

    ``operation`` receives the 1-based attempt number and must re-read its
    entity on every call. Only ConflictError is retried; every other error
    propagates after the session is rolled back.
    """

    attempts = max_attempts or get_settings().optimistic_max_attempts
    attempt = 1
    while True:
        try:
            return operation(attempt)
        except ConflictError as exc:
            session.rollback()
            observe_optimistic_conflict(entity)
            logger.warning(
                "optimistic.conflict",
                extra={"entity_type": entity, "entity_id": exc.entity_id, "attempt": attempt},
            )
            if attempt >= attempts:
                raise
            attempt += 1
        except Exception:
            session.rollback()
            raise
