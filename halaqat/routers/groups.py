from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.models import Halqa
from halaqat.schemas import HalqaAssignStudentRequest, HalqaCreateRequest, HalqaUpdateRequest
from halaqat.services.access_scope_service import assert_center_access, assert_halqa_access
from halaqat.services.halqa_service import (
    assign_student,
    count_active_students,
    create_halqa,
    get_halqa,
    list_active_students,
    list_halaqat,
    update_halqa,
)
from halaqat.services.ledger_service import group_total_points


router = APIRouter(prefix='/halaqat', tags=['Halaqat'])


def _serialize_halqa(row: Halqa, *, student_count: int | None = None) -> dict:
    payload = {
        'id': row.id,
        'center_id': row.center_id,
        'name': row.name,
        'teacher_id': row.teacher_id,
        'max_students': row.max_students,
        'category': row.category,
        'is_active': row.is_active,
    }
    if student_count is not None:
        payload['student_count'] = student_count
    return payload


@router.get('')
def list_all(request: Request, include_inactive: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    rows = list_halaqat(db, user, include_inactive=include_inactive)
    return [_serialize_halqa(row, student_count=count_active_students(db, row.id)) for row in rows]


@router.post('')
def create(payload: HalqaCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_HALAQAT)
    center_id = resolve_center_id(user, payload.center_id)
    with domain_errors():
        row = create_halqa(
            db,
            center_id=center_id,
            name=payload.name,
            teacher_id=payload.teacher_id,
            max_students=payload.max_students,
            category=payload.category,
        )
    return _serialize_halqa(row, student_count=0)


@router.get('/{halqa_id}')
def detail(halqa_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        row = get_halqa(db, halqa_id)
        assert_halqa_access(db, user, row)
    payload = _serialize_halqa(row, student_count=count_active_students(db, row.id))
    payload['total_points'] = group_total_points(db, row.id)
    return payload


@router.patch('/{halqa_id}')
def update(halqa_id: int, payload: HalqaUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_HALAQAT)
    with domain_errors():
        assert_center_access(user, get_halqa(db, halqa_id).center_id)
        row = update_halqa(db, halqa_id, payload.model_dump(exclude_unset=True))
    return _serialize_halqa(row)


@router.get('/{halqa_id}/students')
def students(halqa_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    with domain_errors():
        assert_halqa_access(db, user, get_halqa(db, halqa_id))
    return [
        {'id': row.id, 'full_name': row.full_name, 'phone': row.phone, 'photo_url': row.photo_url}
        for row in list_active_students(db, halqa_id)
    ]


@router.post('/{halqa_id}/students')
def assign(halqa_id: int, payload: HalqaAssignStudentRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    with domain_errors():
        assert_center_access(user, get_halqa(db, halqa_id).center_id)
        row = assign_student(db, halqa_id, payload.student_id)
    return {'student_id': row.id, 'halqa_id': row.halqa_id}
