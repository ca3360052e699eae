from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

# Ownership columns are always taken from the verified claim, never the body.
PROTECTED_COLUMNS = ("id", "company_id", "created_by", "updated_by", "user_id", "created_at", "updated_at")


def tenant_query(db: Session, model: Type, company_id: int) -> Query:
    return db.query(model).filter(model.company_id == company_id)


def list_records(
    db: Session,
    model: Type,
    company_id: int,
    *,
    search: Optional[str] = None,
    search_columns: Sequence[str] = (),
    filters: Optional[Dict[str, Any]] = None,
    order_by: str = "created_at",
    descending: bool = True,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Any]:
    query = tenant_query(db, model, company_id)
    for column_name, value in (filters or {}).items():
        query = query.filter(getattr(model, column_name) == value)
    term = str(search or "").strip()
    if term and search_columns:
        pattern = f"%{term}%"
        query = query.filter(or_(*[getattr(model, name).ilike(pattern) for name in search_columns]))
    column = getattr(model, order_by)
    if descending:
        query = query.order_by(column.desc(), model.id.desc())
    else:
        query = query.order_by(column.asc(), model.id.asc())
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_record(db: Session, model: Type, company_id: int, record_id: int) -> Optional[Any]:
    return tenant_query(db, model, company_id).filter(model.id == record_id).one_or_none()


def _writable(values: Dict[str, Any]) -> Iterable[Tuple[str, Any]]:
    for key, value in values.items():
        if key in PROTECTED_COLUMNS:
            continue
        yield key, value


def create_record(
    db: Session,
    model: Type,
    company_id: int,
    values: Dict[str, Any],
    *,
    creator_column: Optional[str] = "created_by",
    creator_id: Optional[int] = None,
) -> Any:
    record = model(**dict(_writable(values)))
    record.company_id = company_id
    if creator_column and creator_id is not None:
        setattr(record, creator_column, creator_id)
    db.add(record)
    db.flush()
    return record


def update_record(
    db: Session,
    model: Type,
    company_id: int,
    record_id: int,
    values: Dict[str, Any],
    *,
    updater_column: Optional[str] = None,
    updater_id: Optional[int] = None,
) -> Optional[Any]:
    """Apply ``values`` to a same-tenant record; returns None when there is no such record."""
    record = get_record(db, model, company_id, record_id)
    if record is None:
        return None
    for key, value in _writable(values):
        setattr(record, key, value)
    if updater_column and updater_id is not None:
        setattr(record, updater_column, updater_id)
    db.flush()
    return record


def delete_record(db: Session, model: Type, company_id: int, record_id: int) -> int:
    deleted = (
        tenant_query(db, model, company_id)
        .filter(model.id == record_id)
        .delete(synchronize_session=False)
    )
    return int(deleted or 0)


def count_records(db: Session, model: Type, company_id: int) -> int:
    return tenant_query(db, model, company_id).count()
