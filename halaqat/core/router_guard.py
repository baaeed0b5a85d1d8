from __future__ import annotations

import logging
from contextlib import contextmanager

from fastapi import HTTPException, Request

from halaqat.core.capabilities import Capability, has_capability, has_role
from halaqat.core.errors import NotFoundError, error_kind, http_status_for
from halaqat.models import Role
from halaqat.services.auth_service import validate_session_token

logger = logging.getLogger(__name__)

CENTER_HEADER = 'x-center-id'


def resolve_token(request: Request) -> str | None:
    token = request.cookies.get('auth_session')
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def requested_center_id(request: Request) -> int | None:
    raw = (request.headers.get(CENTER_HEADER) or '').strip()
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_auth_user(request: Request) -> dict:
    token = resolve_token(request)
    session = validate_session_token(token)
    if not session:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user_id = int(session.get('user_id') or 0)
    if user_id <= 0:
        raise HTTPException(status_code=401, detail='Unauthorized')
    roles = [str(role).strip().lower() for role in session.get('roles') or []]
    center_id = int(session.get('center_id') or 0) or None
    if Role.SUPER_ADMIN.value in roles:
        # Super admins work across centers and pick one per request.
        center_id = requested_center_id(request) or center_id
    return {
        'user_id': user_id,
        'roles': roles,
        'center_id': center_id,
        'full_name': str(session.get('name') or ''),
    }


def require_capability(user: dict, capability: Capability) -> None:
    if not has_capability(user, capability):
        raise HTTPException(status_code=403, detail='Forbidden')


def resolve_center_id(user: dict, explicit_center_id: int | None = None) -> int:
    """Center a new record belongs to; only super admins may name one explicitly."""
    center_id = int(user.get('center_id') or 0)
    if center_id > 0:
        return center_id
    if has_role(user, Role.SUPER_ADMIN) and int(explicit_center_id or 0) > 0:
        return int(explicit_center_id)
    raise HTTPException(status_code=400, detail='center_id is required')


def assert_center_match(user: dict, entity_center_id: int | None) -> None:
    if has_role(user, Role.SUPER_ADMIN) and not int(user.get('center_id') or 0):
        return
    user_center_id = int(user.get('center_id') or 0)
    target_center_id = int(entity_center_id or 0)
    if user_center_id <= 0 or target_center_id <= 0 or user_center_id != target_center_id:
        raise HTTPException(status_code=403, detail='Forbidden')


@contextmanager
def domain_errors():
    """Translate service-layer errors into HTTP responses."""
    try:
        yield
    except (NotFoundError, PermissionError, ValueError) as exc:
        status_code = http_status_for(exc)
        logger.info('domain_error kind=%s detail=%s', error_kind(exc), exc)
        raise HTTPException(status_code=status_code, detail=str(exc) or 'Request failed') from exc
