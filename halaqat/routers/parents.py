from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.schemas import ParentCreateRequest, ParentStudentLinkRequest
from halaqat.services.access_scope_service import assert_center_access, get_parent_for_user
from halaqat.services.parent_service import (
    create_parent,
    get_parent,
    link_parent_student,
    list_children,
    unlink_parent_student,
)


router = APIRouter(prefix='/parents', tags=['Parents'])


def _serialize_children(rows) -> list[dict]:
    return [{'id': row.id, 'full_name': row.full_name, 'halqa_id': row.halqa_id} for row in rows]


@router.post('')
def create(payload: ParentCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    center_id = resolve_center_id(user, payload.center_id)
    with domain_errors():
        row = create_parent(db, payload.full_name, payload.phone, payload.work, center_id=center_id)
    return {'id': row.id, 'full_name': row.full_name, 'phone': row.phone, 'work': row.work}


@router.post('/link-student')
def link_student(payload: ParentStudentLinkRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    with domain_errors():
        assert_center_access(user, get_parent(db, payload.parent_id).center_id)
        row = link_parent_student(db, payload.parent_id, payload.student_id, payload.relation)
    return {'id': row.id, 'parent_id': row.parent_id, 'student_id': row.student_id, 'relation': row.relation}


@router.post('/unlink-student')
def unlink_student(payload: ParentStudentLinkRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    with domain_errors():
        assert_center_access(user, get_parent(db, payload.parent_id).center_id)
    removed = unlink_parent_student(db, payload.parent_id, payload.student_id)
    return {'ok': True, 'removed': removed}


@router.get('/me/children')
def my_children(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        parent = get_parent_for_user(db, user)
    return _serialize_children(list_children(db, parent.id))


@router.get('/{parent_id}/children')
def children(parent_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        assert_center_access(user, get_parent(db, parent_id).center_id)
    return _serialize_children(list_children(db, parent_id))
