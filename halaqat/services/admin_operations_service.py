from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime

from sqlalchemy import Date, DateTime, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability, require_capability
from halaqat.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationFailedError
from halaqat.models import (
    Activity,
    AuthUser,
    BadgeSetting,
    Center,
    Halqa,
    Holiday,
    Parent,
    StoreItem,
    Student,
    StudentParent,
)
from halaqat.services.center_scope_service import get_actor_center_id, is_super_admin
from halaqat.services.halqa_service import ensure_capacity, validate_teacher


logger = logging.getLogger(__name__)

ADMIN_ACTIONS = {'insert', 'update', 'delete'}

# Generic row operations are limited to reference data; ledgers and workflow
# rows only change through their own services.
ADMIN_TABLES = {
    'centers': Center,
    'halaqat': Halqa,
    'students': Student,
    'parents': Parent,
    'student_parents': StudentParent,
    'store_items': StoreItem,
    'badge_settings': BadgeSetting,
    'activities': Activity,
    'holidays': Holiday,
}

_READONLY_COLUMNS = {'id', 'created_at', 'updated_at'}

# Columns that point at center-owned rows.
_REFERENCES = {
    'halqa_id': Halqa,
    'user_id': AuthUser,
    'student_id': Student,
    'parent_id': Parent,
}


def serialize_row(row) -> dict:
    payload = {}
    for column in inspect(row).mapper.column_attrs:
        value = getattr(row, column.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        payload[column.key] = value
    return payload


def _clean_data(model, data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationFailedError('data must be an object')
    columns = {column.key: column for column in inspect(model).mapper.column_attrs}
    unknown = sorted(key for key in data if key not in columns or key in _READONLY_COLUMNS)
    if unknown:
        raise ValidationFailedError(f'Unknown or read-only columns: {unknown}')
    clean = {}
    for key, value in data.items():
        column_type = columns[key].columns[0].type
        if isinstance(value, str) and isinstance(column_type, DateTime):
            value = datetime.fromisoformat(value)
        elif isinstance(value, str) and isinstance(column_type, Date):
            value = date.fromisoformat(value)
        clean[key] = value
    return clean


def _row_center_id(db: Session, row) -> int | None:
    if isinstance(row, Center):
        return row.id
    if isinstance(row, StudentParent):
        student = db.query(Student).filter(Student.id == row.student_id).first()
        return student.center_id if student else None
    return getattr(row, 'center_id', None)


def _assert_row_center(db: Session, user: dict, row) -> None:
    actor_center_id = get_actor_center_id(user)
    if is_super_admin(user) and not actor_center_id:
        return
    row_center_id = _row_center_id(db, row)
    if row_center_id is None and isinstance(row, (StoreItem, BadgeSetting)):
        # Global rows belong to super admins only.
        raise AccessDeniedError('Global rows are managed by super admins')
    if int(row_center_id or 0) != int(actor_center_id or 0):
        raise AccessDeniedError('Record belongs to another center')


def _assert_references(db: Session, model, values: dict, center_id: int | None) -> None:
    """Referenced rows must exist and belong to the same center as the row being written."""
    if model is Halqa and values.get('teacher_id') is not None:
        validate_teacher(db, values['teacher_id'], int(center_id or 0))
    for key, target in _REFERENCES.items():
        if values.get(key) is None:
            continue
        referenced = db.query(target).filter(target.id == int(values[key])).first()
        if not referenced:
            raise NotFoundError(f'{key} {values[key]} not found')
        if int(referenced.center_id or 0) != int(center_id or 0):
            raise AccessDeniedError(f'{key} belongs to another center')


def _write_center_id(db: Session, user: dict, row) -> int | None:
    return get_actor_center_id(user) or _row_center_id(db, row)


def _assert_halqa_seats(db: Session, joining: Counter) -> None:
    for halqa_id, count in joining.items():
        halqa = db.query(Halqa).filter(Halqa.id == halqa_id).one()
        if not halqa.is_active:
            raise ConflictError('Halqa is inactive')
        ensure_capacity(db, halqa, joining=count)


def _prepare_insert(db: Session, user: dict, model, data: dict):
    clean = _clean_data(model, data)
    actor_center_id = get_actor_center_id(user)
    if 'center_id' in {column.key for column in inspect(model).mapper.column_attrs} and model is not Center:
        if actor_center_id:
            clean['center_id'] = int(actor_center_id)
        elif 'center_id' not in clean and model not in (StoreItem, BadgeSetting):
            raise ValidationFailedError('center_id is required')
    row = model(**clean)
    _assert_row_center(db, user, row)
    _assert_references(db, model, clean, _write_center_id(db, user, row))
    return row


def _apply_update(db: Session, user: dict, model, row, data: dict) -> None:
    clean = _clean_data(model, data)
    clean.pop('center_id', None)
    values = dict(clean)
    if model is StudentParent:
        # Both ends of a link are checked, even when only one of them moves.
        values.setdefault('student_id', row.student_id)
        values.setdefault('parent_id', row.parent_id)
    _assert_references(db, model, values, _write_center_id(db, user, row))
    if model is Student:
        halqa_id = clean.get('halqa_id', row.halqa_id)
        will_be_active = bool(clean.get('is_active', row.is_active))
        joining = int(halqa_id or 0) != int(row.halqa_id or 0) or not row.is_active
        if halqa_id is not None and will_be_active and joining:
            _assert_halqa_seats(db, Counter({int(halqa_id): 1}))
    for key, value in clean.items():
        setattr(row, key, value)


def run_admin_operation(
    db: Session,
    user: dict,
    *,
    action: str,
    table: str,
    data: dict | list[dict] | None = None,
    row_id: int | None = None,
):
    require_capability(user, Capability.ADMIN_OPERATIONS)
    clean_action = (action or '').strip().lower()
    if clean_action not in ADMIN_ACTIONS:
        raise ValidationFailedError(f'Unsupported action: {action}')
    model = ADMIN_TABLES.get((table or '').strip())
    if model is None:
        raise ValidationFailedError(f'Table not allowed: {table}')
    if model is Center:
        require_capability(user, Capability.MANAGE_CENTERS)

    try:
        if clean_action == 'insert':
            items = data if isinstance(data, list) else [data or {}]
            rows = [_prepare_insert(db, user, model, item) for item in items]
            if model is Student:
                _assert_halqa_seats(
                    db,
                    Counter(int(row.halqa_id) for row in rows if row.halqa_id is not None and row.is_active is not False),
                )
            db.add_all(rows)
            db.commit()
            for row in rows:
                db.refresh(row)
            result = [serialize_row(row) for row in rows]
        else:
            if not int(row_id or 0):
                raise ValidationFailedError('id is required')
            row = db.query(model).filter(model.id == int(row_id)).first()
            if not row:
                raise NotFoundError(f'{table} row not found')
            _assert_row_center(db, user, row)
            if clean_action == 'update':
                _apply_update(db, user, model, row, data or {})
                db.commit()
                db.refresh(row)
                result = serialize_row(row)
            else:
                db.delete(row)
                db.commit()
                result = {'id': int(row_id), 'deleted': True}
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Operation violates a data constraint') from exc
    except (TypeError, ValueError) as exc:
        db.rollback()
        if isinstance(exc, (ValidationFailedError, ConflictError)):
            raise
        raise ValidationFailedError(str(exc)) from exc

    logger.info(
        'admin_operation action=%s table=%s row_id=%s user_id=%s',
        clean_action,
        table,
        row_id,
        user.get('user_id'),
    )
    return result
