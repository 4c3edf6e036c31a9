"""
Module: fleet_kernel.db.ledger_store
Responsibility: Thin persistence gateway used by every kernel service.
    Point lookup, filtered lists, inserts, deletes, and the conditional
    update primitive that backs every lifecycle transition.

Architecture position: Kernel > DB.  May import from db/base.py and
    exceptions.  MUST NOT import from services/, selectors/ or outer layers.

Invariants enforced:
    - conditional_update() is a single ``UPDATE ... WHERE id = :id AND
      status = :expected`` statement.  Exactly one of two racing writers sees
      an affected row count of 1.
    - The store never commits.  It flushes within the caller's transaction.
    - After a conditional update, any identity-map copy of the row is
      refreshed (applied) or expired (not applied), so the caller never acts
      on a status it did not write.

Failure modes:
    - StoreError wraps OperationalError / DBAPIError (connectivity, lock
      timeouts, driver failures).
    - IntegrityError is NOT wrapped.  Callers that rely on a unique index
      (assignment request upsert) need to see it as-is.
"""

from __future__ import annotations

from typing import Any, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key
from sqlalchemy.sql.base import Executable

from fleet_kernel.db.base import Base
from fleet_kernel.exceptions import StoreError
from fleet_kernel.logging_config import get_logger

logger = get_logger("db.ledger_store")

ModelType = TypeVar("ModelType", bound=Base)


class LedgerStore:
    """
    Persistence gateway bound to the caller's session.

    Contract:
        Accepts a Session from the caller.  Every write is flushed, never
        committed.

    Guarantees:
        - conditional_update() returns True iff exactly one row matched both
          the id and the expected status.
    """

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        """Point lookup by primary key (identity map first)."""
        try:
            return self.session.get(model, entity_id)
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError("get", str(exc)) from exc

    def fetch_all(self, statement: Executable) -> Sequence[Any]:
        """Execute a select and return its scalar rows."""
        try:
            return self.session.execute(statement).scalars().all()
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError("fetch_all", str(exc)) from exc

    def fetch_first(self, statement: Executable) -> Any | None:
        """Execute a select and return the first scalar row, or None."""
        try:
            return self.session.execute(statement).scalars().first()
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError("fetch_first", str(exc)) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, instance: ModelType) -> ModelType:
        """Add and flush a new row."""
        self.session.add(instance)
        self.flush("insert")
        return instance

    def delete(self, instance: Base) -> None:
        """Delete and flush an existing row."""
        self.session.delete(instance)
        self.flush("delete")

    def flush(self, operation: str = "flush") -> None:
        try:
            self.session.flush()
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError(operation, str(exc)) from exc

    def conditional_update(
        self,
        model: type[ModelType],
        entity_id: UUID,
        expected_status: str,
        values: dict[str, Any],
    ) -> bool:
        """
        Compare-and-swap on ``status``.

        Preconditions: ``model`` has ``id`` and ``status`` columns.
        Postconditions: If applied, the identity-map instance (if any) holds
            the written values.  If not applied, it is expired and reloads
            on next access.

        Returns:
            True if exactly one row was updated.
        """
        statement = (
            update(model)
            .where(model.id == entity_id, model.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(statement)
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError("conditional_update", str(exc)) from exc

        applied = result.rowcount == 1

        instance = self.session.identity_map.get(identity_key(model, entity_id))
        if instance is not None:
            if applied:
                self.session.refresh(instance)
            else:
                self.session.expire(instance)

        logger.debug(
            "conditional_update",
            extra={
                "table": model.__tablename__,
                "entity_id": str(entity_id),
                "expected_status": expected_status,
                "applied": applied,
            },
        )
        return applied

    def raise_if_lower(
        self,
        model: type[ModelType],
        entity_id: UUID,
        column: str,
        value: Any,
        extra_values: dict[str, Any] | None = None,
    ) -> bool:
        """
        Set ``column`` to ``value`` only where it currently holds less.

        A single ``UPDATE ... WHERE id = :id AND column < :value``, so two
        concurrent writers can never move the column down.  The
        identity-map instance (if any) is refreshed either way.

        Returns:
            True if the row was raised.
        """
        target = getattr(model, column)
        statement = (
            update(model)
            .where(model.id == entity_id, target < value)
            .values({column: value, **(extra_values or {})})
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(statement)
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreError("raise_if_lower", str(exc)) from exc

        applied = result.rowcount == 1

        instance = self.session.identity_map.get(identity_key(model, entity_id))
        if instance is not None:
            self.session.refresh(instance)

        logger.debug(
            "raise_if_lower",
            extra={
                "table": model.__tablename__,
                "entity_id": str(entity_id),
                "column": column,
                "applied": applied,
            },
        )
        return applied
