"""Privileged account functions.

Every endpoint answers with the same envelope:
``{'success': bool, 'data': ..., 'error': {'kind': str, 'message': str} | None}``.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.errors import AccessDeniedError, NotFoundError, error_kind, http_status_for
from halaqat.core.router_guard import require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.models import AuthUser, Role
from halaqat.schemas import (
    AdminOperationRequest,
    CreateStudentWithParentRequest,
    CreateUserRequest,
    LoginByNameRequest,
    ToggleUserStatusRequest,
)
from halaqat.services.access_scope_service import assert_center_access
from halaqat.services.account_service import create_student_with_parent
from halaqat.services.admin_operations_service import run_admin_operation
from halaqat.services.auth_service import AuthenticationError, create_user, login_by_name, set_user_active
from halaqat.services.center_scope_service import is_super_admin


logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api/functions', tags=['Functions'])

_KIND_BY_STATUS = {400: 'validation', 401: 'unauthorized', 403: 'forbidden', 404: 'not_found', 409: 'conflict'}


def _failure(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={'success': False, 'data': None, 'error': {'kind': kind, 'message': message}},
    )


def _invoke(operation: Callable[[], object]):
    try:
        data = operation()
    except AuthenticationError as exc:
        return _failure(401, 'unauthorized', str(exc))
    except HTTPException as exc:
        return _failure(exc.status_code, _KIND_BY_STATUS.get(exc.status_code, 'error'), str(exc.detail))
    except (NotFoundError, PermissionError, ValueError) as exc:
        logger.info('function_failed kind=%s detail=%s', error_kind(exc), exc)
        return _failure(http_status_for(exc), error_kind(exc), str(exc) or 'Request failed')
    return {'success': True, 'data': data, 'error': None}


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Body validation failures on function endpoints keep the envelope; other paths keep FastAPI's 422."""
    if not request.url.path.startswith(router.prefix):
        return await request_validation_exception_handler(request, exc)
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = '.'.join(str(part) for part in first.get('loc', ()) if part != 'body')
    message = str(first.get('msg') or 'Invalid request')
    logger.info('function_failed kind=validation path=%s field=%s', request.url.path, field)
    return _failure(400, 'validation', f'{field}: {message}' if field else message)


@router.post('/create-user')
def create_user_function(payload: CreateUserRequest, request: Request, db: Session = Depends(get_db)):
    def operation():
        user = require_auth_user(request)
        require_capability(user, Capability.MANAGE_USERS)
        role = (payload.role or '').strip().lower()
        if role in {Role.SUPER_ADMIN.value, Role.CENTER_ADMIN.value} and not is_super_admin(user):
            raise AccessDeniedError('Only super admins can create administrators')
        center_id = None if role == Role.SUPER_ADMIN.value else resolve_center_id(user, payload.center_id)
        row = create_user(
            db,
            full_name=payload.full_name,
            password=payload.password,
            role=role,
            center_id=center_id,
            email=payload.email,
            username=payload.username,
            phone=payload.phone,
        )
        return {'user_id': row.id, 'username': row.username, 'center_id': row.center_id}

    return _invoke(operation)


@router.post('/toggle-user-status')
def toggle_user_status(payload: ToggleUserStatusRequest, request: Request, db: Session = Depends(get_db)):
    def operation():
        user = require_auth_user(request)
        require_capability(user, Capability.MANAGE_USERS)
        if int(payload.user_id) == int(user['user_id']):
            raise AccessDeniedError('You cannot change your own status')
        target = db.query(AuthUser).filter(AuthUser.id == int(payload.user_id)).first()
        if not target:
            raise NotFoundError('User not found')
        if target.center_id is None and not is_super_admin(user):
            raise AccessDeniedError('Only super admins can change this account')
        if target.center_id is not None:
            assert_center_access(user, target.center_id)
        row = set_user_active(db, target.id, payload.action == 'enable')
        return {'user_id': row.id, 'is_active': row.is_active}

    return _invoke(operation)


@router.post('/create-student-with-parent')
def create_student_with_parent_function(
    payload: CreateStudentWithParentRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    def operation():
        user = require_auth_user(request)
        require_capability(user, Capability.MANAGE_STUDENTS)
        return create_student_with_parent(
            db,
            student_name=payload.student_name,
            parent_name=payload.parent_name,
            parent_phone=payload.parent_phone,
            center_id=resolve_center_id(user, payload.center_id),
            student_phone=payload.student_phone,
            birth_date=payload.birth_date,
            halqa_id=payload.halqa_id,
            parent_work=payload.parent_work,
            relation=payload.relationship,
        )

    return _invoke(operation)


@router.post('/login-by-name')
def login_by_name_function(payload: LoginByNameRequest, db: Session = Depends(get_db)):
    def operation():
        data = login_by_name(db, payload.identifier, payload.password)
        return {
            'token': data['token'],
            'user_id': data['user_id'],
            'full_name': data['full_name'],
            'roles': data['roles'],
            'center_id': data['center_id'],
            'expires_at': data['expires_at'],
        }

    return _invoke(operation)


@router.post('/admin-operations')
def admin_operations(payload: AdminOperationRequest, request: Request, db: Session = Depends(get_db)):
    def operation():
        user = require_auth_user(request)
        return run_admin_operation(
            db,
            user,
            action=payload.action or payload.operation or '',
            table=payload.table,
            data=payload.data,
            row_id=payload.id,
        )

    return _invoke(operation)
