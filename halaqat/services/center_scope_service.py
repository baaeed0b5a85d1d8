from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token

from sqlalchemy import false, or_
from sqlalchemy.orm import Query


_current_center_id: ContextVar[int | None] = ContextVar('current_center_id', default=None)

_GLOBAL_ROW_MODELS = {'StoreItem', 'BadgeSetting'}


def set_current_center_id(center_id: int | None) -> Token:
    clean = int(center_id or 0)
    return _current_center_id.set(clean if clean > 0 else None)


def reset_current_center_id(token: Token) -> None:
    _current_center_id.reset(token)


def get_current_center_id() -> int | None:
    value = _current_center_id.get()
    clean = int(value or 0)
    return clean if clean > 0 else None


@contextmanager
def center_context(center_id: int | None):
    token = set_current_center_id(center_id)
    try:
        yield
    finally:
        reset_current_center_id(token)


def is_super_admin(user: dict | None) -> bool:
    return 'super_admin' in ((user or {}).get('roles') or [])


def get_actor_center_id(user: dict | None) -> int | None:
    request_center_id = get_current_center_id()
    if int(request_center_id or 0) > 0:
        return int(request_center_id)
    if not user:
        return None
    explicit = int(user.get('center_id') or 0)
    if explicit > 0:
        return explicit
    return None


def apply_center_scope(query: Query, user: dict | None):
    entity = None
    if query.column_descriptions:
        entity = query.column_descriptions[0].get('entity')
    if entity is None or not hasattr(entity, 'center_id'):
        return query

    center_id = get_actor_center_id(user)
    if int(center_id or 0) <= 0:
        # Super admins without a selected center see every center.
        if is_super_admin(user):
            return query
        return query.filter(false())
    if entity.__name__ in _GLOBAL_ROW_MODELS:
        return query.filter(or_(entity.center_id == int(center_id), entity.center_id.is_(None)))
    return query.filter(entity.center_id == int(center_id))
