from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.models import Holiday, HolidayAttendance
from halaqat.schemas import (
    ConsentResponseRequest,
    HolidayAttendanceMarkRequest,
    HolidayCreateRequest,
    HolidayUpdateRequest,
)
from halaqat.services.access_scope_service import assert_center_access, get_parent_for_user
from halaqat.services.holiday_service import (
    attendance_summary,
    create_holiday,
    delete_holiday,
    get_attendance_row,
    get_holiday,
    holiday_halqa_ids,
    list_attendance,
    list_holidays,
    list_pending_for_parent,
    mark_attendance,
    respond_holiday,
    update_holiday,
)


router = APIRouter(prefix='/holidays', tags=['Holidays'])


def _serialize_holiday(db: Session, row: Holiday) -> dict:
    return {
        'id': row.id,
        'center_id': row.center_id,
        'name': row.name,
        'reason': row.reason,
        'start_date': row.start_date.isoformat(),
        'end_date': row.end_date.isoformat(),
        'is_recurring': row.is_recurring,
        'halqa_ids': holiday_halqa_ids(db, row.id),
    }


def _serialize_row(row: HolidayAttendance) -> dict:
    return {
        'id': row.id,
        'holiday_id': row.holiday_id,
        'student_id': row.student_id,
        'parent_id': row.parent_id,
        'parent_approved': row.parent_approved,
        'parent_response_date': row.parent_response_date.isoformat() if row.parent_response_date else None,
        'attended': row.attended,
        'marked_at': row.marked_at.isoformat() if row.marked_at else None,
        'notes': row.notes,
    }


def _load_holiday(db: Session, user: dict, holiday_id: int, capability: Capability) -> Holiday:
    require_capability(user, capability)
    with domain_errors():
        row = get_holiday(db, holiday_id)
        assert_center_access(user, row.center_id)
    return row


@router.get('')
def list_all(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    return [_serialize_holiday(db, row) for row in list_holidays(db, user)]


@router.post('')
def create(payload: HolidayCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_HOLIDAYS)
    center_id = resolve_center_id(user, payload.center_id)
    with domain_errors():
        row = create_holiday(
            db,
            center_id=center_id,
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
            reason=payload.reason,
            is_recurring=payload.is_recurring,
            halqa_ids=payload.halqa_ids,
            created_by=user['user_id'],
        )
    return _serialize_holiday(db, row)


@router.get('/pending')
def pending_for_parent(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.RESPOND_CONSENT)
    with domain_errors():
        parent = get_parent_for_user(db, user)
    return [_serialize_row(row) for row in list_pending_for_parent(db, parent.id)]


@router.post('/attendance/{row_id}/respond')
def respond(row_id: int, payload: ConsentResponseRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.RESPOND_CONSENT)
    with domain_errors():
        parent = get_parent_for_user(db, user)
        row = respond_holiday(db, row_id, parent.id, payload.approved, notes=payload.notes)
    return _serialize_row(row)


@router.post('/attendance/{row_id}/mark')
def mark(row_id: int, payload: HolidayAttendanceMarkRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        holiday_id = get_attendance_row(db, row_id).holiday_id
    _load_holiday(db, user, holiday_id, Capability.MARK_HOLIDAY_ATTENDANCE)
    with domain_errors():
        row = mark_attendance(db, row_id, payload.attended, marked_by=user['user_id'])
    return _serialize_row(row)


@router.patch('/{holiday_id}')
def update(holiday_id: int, payload: HolidayUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_holiday(db, user, holiday_id, Capability.MANAGE_HOLIDAYS)
    with domain_errors():
        row = update_holiday(db, holiday_id, payload.model_dump(exclude_unset=True))
    return _serialize_holiday(db, row)


@router.delete('/{holiday_id}')
def delete(holiday_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_holiday(db, user, holiday_id, Capability.MANAGE_HOLIDAYS)
    with domain_errors():
        delete_holiday(db, holiday_id)
    return {'ok': True, 'id': holiday_id}


@router.get('/{holiday_id}/attendance')
def attendance(holiday_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_holiday(db, user, holiday_id, Capability.MARK_HOLIDAY_ATTENDANCE)
    return {'summary': attendance_summary(db, holiday_id), 'rows': list_attendance(db, holiday_id)}
