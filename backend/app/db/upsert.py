from __future__ import annotations

from collections.abc import Sequence
from typing import Any
import uuid

from sqlalchemy import and_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert(
    db: Session,
    model,
    values: dict[str, Any],
    *,
    conflict_columns: Sequence[str],
    update_columns: Sequence[str] = (),
) -> tuple[str, bool]:
    """Insert a row keyed on a unique constraint, or update/keep the existing one.

    Runs as a single statement so concurrent writers on the same key never
    produce two rows. Returns the id of the row now holding the key and
    whether it was newly inserted.
    """
    payload = dict(values)
    payload.setdefault("id", str(uuid.uuid4()))
    dialect = db.get_bind().dialect.name
    insert_factory = _INSERT_BY_DIALECT.get(dialect)
    if insert_factory is None:
        return _upsert_with_savepoint(db, model, payload, conflict_columns, update_columns)

    statement = insert_factory(model).values(**payload)
    if update_columns:
        statement = statement.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: statement.excluded[column] for column in update_columns},
        )
    else:
        statement = statement.on_conflict_do_nothing(index_elements=list(conflict_columns))
    db.execute(statement)
    row_id = _row_id(db, model, payload, conflict_columns)
    return row_id, row_id == payload["id"]


def _key_filter(model, payload: dict[str, Any], conflict_columns: Sequence[str]):
    return and_(*(getattr(model, column) == payload[column] for column in conflict_columns))


def _row_id(db: Session, model, payload: dict[str, Any], conflict_columns: Sequence[str]) -> str:
    return db.execute(select(model.id).where(_key_filter(model, payload, conflict_columns))).scalar_one()


def _upsert_with_savepoint(
    db: Session,
    model,
    payload: dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> tuple[str, bool]:
    try:
        with db.begin_nested():
            db.execute(model.__table__.insert().values(**payload))
        return payload["id"], True
    except IntegrityError:
        key = _key_filter(model, payload, conflict_columns)
        if update_columns:
            db.execute(update(model).where(key).values(**{column: payload[column] for column in update_columns}))
        return _row_id(db, model, payload, conflict_columns), False
