# assetdesk/repository.py
"""
Row access shared by every blueprint.

All helpers take the SQLAlchemy session explicitly; views pass the
request-scoped `db.session`. Queries are built with bound parameters only.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, TypeVar

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AppError, Conflict, NotFound, ReferenceNotFound
from .models import utcnow_naive

M = TypeVar("M")


def _label(model: type) -> str:
    return getattr(model, "__display__", None) or model.__name__


# =========================================================
# Reads
# =========================================================
def active(model: type[M]) -> sa.Select:
    """SELECT of non-deleted rows."""
    stmt = sa.select(model)
    if hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))
    return stmt


def list_active(session: Session, model: type[M], *criteria: Any) -> list[M]:
    stmt = active(model).where(*criteria).order_by(model.id)
    return list(session.scalars(stmt).unique())


def get_any(session: Session, model: type[M], obj_id: int) -> M | None:
    """Direct lookup by id, soft-deleted rows included (audit reads)."""
    return session.get(model, obj_id)


def get_active(session: Session, model: type[M], obj_id: int) -> M:
    obj = session.get(model, obj_id)
    if obj is None or getattr(obj, "deleted_at", None) is not None:
        raise NotFound(f"{_label(model)} {obj_id} not found.")
    return obj


def find_active_by(
    session: Session,
    model: type[M],
    column: Any,
    value: Any,
    *,
    ci: bool = False,
    extra: tuple = (),
) -> M | None:
    """Lookup by a natural/unique key among non-deleted rows."""
    if value is None:
        return None
    cond = sa.func.lower(column) == str(value).lower() if ci else column == value
    return session.scalars(active(model).where(cond, *extra).order_by(model.id).limit(1)).first()


# =========================================================
# Write-time checks
# =========================================================
def require_reference(session: Session, model: type[M], obj_id: int | None, field: str) -> M | None:
    """FK targets must exist and not be soft-deleted when written."""
    if obj_id is None:
        return None
    obj = session.get(model, obj_id)
    if obj is None or getattr(obj, "deleted_at", None) is not None:
        raise ReferenceNotFound(
            f"{_label(model)} {obj_id} does not exist or has been deleted.",
            errors={field: [f"{_label(model)} {obj_id} does not exist or has been deleted."]},
            field=field,
        )
    return obj


def ensure_unique(
    session: Session,
    model: type[M],
    column: Any,
    value: Any,
    field: str,
    *,
    exclude_id: int | None = None,
    ci: bool = False,
    extra: tuple = (),
) -> None:
    if value is None or value == "":
        return
    cond = sa.func.lower(column) == str(value).lower() if ci else column == value
    stmt = active(model).where(cond, *extra)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if session.scalars(stmt.limit(1)).first() is not None:
        raise Conflict(
            f"{field} '{value}' is already in use.",
            errors={field: [f"'{value}' is already in use."]},
            field=field,
        )


def apply_changes(obj: Any, changes: dict[str, Any]) -> Any:
    for key, value in changes.items():
        setattr(obj, key, value)
    return obj


def soft_delete(obj: Any) -> Any:
    obj.deleted_at = utcnow_naive()
    return obj


# =========================================================
# Transactions
# =========================================================
@contextmanager
def transaction(session: Session, action: str) -> Iterator[Session]:
    """
    Commit on success; on any error roll back fully and re-raise. Constraint
    violations that slipped past the pre-checks surface as Conflict.
    """
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        current_app.logger.warning("%s failed: %s", action, exc.orig)
        raise Conflict(f"{action} failed: a record with the same unique value already exists.") from exc
    except AppError as exc:
        session.rollback()
        current_app.logger.info("%s rejected: %s", action, exc.message)
        raise
    except Exception:
        session.rollback()
        current_app.logger.exception("%s failed", action)
        raise
