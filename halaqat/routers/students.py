from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.models import Student
from halaqat.schemas import StudentCreateRequest, StudentUpdateRequest
from halaqat.services.access_scope_service import assert_student_access, get_student_for_user
from halaqat.services.ledger_service import student_balance
from halaqat.services.parent_service import get_parents_for_student
from halaqat.services.report_service import student_recitation_history
from halaqat.services.student_service import create_student, get_student, list_students, update_student


router = APIRouter(prefix='/students', tags=['Students'])


def _serialize_student(row: Student) -> dict:
    return {
        'id': row.id,
        'center_id': row.center_id,
        'halqa_id': row.halqa_id,
        'user_id': row.user_id,
        'full_name': row.full_name,
        'phone': row.phone,
        'birth_date': row.birth_date.isoformat() if row.birth_date else None,
        'photo_url': row.photo_url,
        'notes': row.notes,
        'previous_surah': row.previous_surah,
        'previous_ayah': row.previous_ayah,
        'is_active': row.is_active,
    }


@router.get('')
def list_all(
    request: Request,
    halqa_id: int | None = None,
    search: str = '',
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    user = require_auth_user(request)
    require_capability(user, Capability.VIEW_STUDENTS)
    rows = list_students(db, user, halqa_id=halqa_id, search=search, include_inactive=include_inactive)
    return [_serialize_student(row) for row in rows]


@router.post('')
def create(payload: StudentCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    center_id = resolve_center_id(user, payload.center_id)
    with domain_errors():
        row = create_student(
            db,
            center_id=center_id,
            full_name=payload.full_name,
            phone=payload.phone,
            birth_date=payload.birth_date,
            halqa_id=payload.halqa_id,
            notes=payload.notes,
            previous_surah=payload.previous_surah,
            previous_ayah=payload.previous_ayah,
        )
    return _serialize_student(row)


@router.get('/me')
def me(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = get_student_for_user(db, user)
    payload = _serialize_student(row)
    payload['balance'] = student_balance(db, row.id)
    return payload


@router.get('/{student_id}')
def detail(student_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = get_student(db, student_id)
        assert_student_access(db, user, row)
    payload = _serialize_student(row)
    payload['parents'] = [
        {'id': parent.id, 'full_name': parent.full_name, 'phone': parent.phone}
        for parent in get_parents_for_student(db, row.id)
    ]
    return payload


@router.patch('/{student_id}')
def update(student_id: int, payload: StudentUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STUDENTS)
    with domain_errors():
        assert_student_access(db, user, get_student(db, student_id))
        row = update_student(db, student_id, payload.model_dump(exclude_unset=True))
    return _serialize_student(row)


@router.get('/{student_id}/recitations')
def recitations(student_id: int, request: Request, limit: int = 50, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_student_access(db, user, get_student(db, student_id))
    return student_recitation_history(db, student_id, limit=max(1, min(limit, 200)))
