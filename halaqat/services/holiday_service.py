from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from halaqat.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import Holiday, HolidayAttendance, HolidayHalqa, Student
from halaqat.services.center_scope_service import apply_center_scope
from halaqat.services.halqa_service import validate_center_halqa_ids
from halaqat.services.parent_service import list_student_parent_pairs


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('name', 'reason', 'start_date', 'end_date', 'is_recurring')


def get_holiday(db: Session, holiday_id: int) -> Holiday:
    row = db.query(Holiday).filter(Holiday.id == int(holiday_id)).first()
    if not row:
        raise NotFoundError('Holiday not found')
    return row


def _fan_out_attendance(db: Session, holiday: Holiday, halqa_ids: list[int]) -> int:
    rows = db.query(HolidayAttendance).filter(HolidayAttendance.holiday_id == holiday.id).all()
    existing = {(int(row.student_id), int(row.parent_id) if row.parent_id is not None else None) for row in rows}
    parentless = {int(row.student_id): row for row in rows if row.parent_id is None}
    created = 0
    for pair in list_student_parent_pairs(db, halqa_ids):
        if pair in existing:
            continue
        student_id, parent_id = pair
        placeholder = parentless.pop(student_id, None) if parent_id is not None else None
        if placeholder is not None:
            # A parent linked after fan-out takes over the student's parentless row, keeping any staff mark.
            existing.discard((student_id, None))
            placeholder.parent_id = parent_id
        else:
            db.add(HolidayAttendance(holiday_id=holiday.id, student_id=student_id, parent_id=parent_id))
            created += 1
        existing.add(pair)
    db.flush()
    return created


def create_holiday(
    db: Session,
    *,
    center_id: int,
    name: str,
    start_date: date,
    end_date: date,
    reason: str = '',
    is_recurring: bool = False,
    halqa_ids: list[int] | None = None,
    created_by: int | None = None,
) -> Holiday:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Holiday name is required')
    if end_date < start_date:
        raise ValidationFailedError('end_date must not be before start_date')
    clean_halqa_ids = validate_center_halqa_ids(db, center_id, halqa_ids)

    try:
        row = Holiday(
            center_id=int(center_id),
            name=clean_name,
            reason=reason or '',
            start_date=start_date,
            end_date=end_date,
            is_recurring=bool(is_recurring),
            created_by=created_by,
        )
        db.add(row)
        db.flush()
        for halqa_id in clean_halqa_ids:
            db.add(HolidayHalqa(holiday_id=row.id, halqa_id=halqa_id))
        created = _fan_out_attendance(db, row, clean_halqa_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    logger.info('holiday_created holiday_id=%s halaqat=%s rows=%s', row.id, clean_halqa_ids, created)
    return row


def update_holiday(db: Session, holiday_id: int, fields: dict) -> Holiday:
    row = get_holiday(db, holiday_id)
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS or value is None:
            continue
        if key == 'name' and not str(value).strip():
            raise ValidationFailedError('Holiday name is required')
        setattr(row, key, value)
    if row.end_date < row.start_date:
        raise ValidationFailedError('end_date must not be before start_date')
    if fields.get('halqa_ids') is not None:
        clean_halqa_ids = validate_center_halqa_ids(db, row.center_id, fields['halqa_ids'])
        db.query(HolidayHalqa).filter(HolidayHalqa.holiday_id == row.id).delete(synchronize_session=False)
        for halqa_id in clean_halqa_ids:
            db.add(HolidayHalqa(holiday_id=row.id, halqa_id=halqa_id))
        _fan_out_attendance(db, row, clean_halqa_ids)
    db.commit()
    db.refresh(row)
    return row


def delete_holiday(db: Session, holiday_id: int) -> None:
    row = get_holiday(db, holiday_id)
    db.query(HolidayAttendance).filter(HolidayAttendance.holiday_id == row.id).delete(synchronize_session=False)
    db.query(HolidayHalqa).filter(HolidayHalqa.holiday_id == row.id).delete(synchronize_session=False)
    db.delete(row)
    db.commit()
    logger.info('holiday_deleted holiday_id=%s', holiday_id)


def list_holidays(db: Session, user: dict | None) -> list[Holiday]:
    return apply_center_scope(db.query(Holiday), user).order_by(Holiday.start_date.desc(), Holiday.id.desc()).all()


def holiday_halqa_ids(db: Session, holiday_id: int) -> list[int]:
    rows = db.query(HolidayHalqa.halqa_id).filter(HolidayHalqa.holiday_id == int(holiday_id)).all()
    return sorted(int(halqa_id) for (halqa_id,) in rows)


def get_attendance_row(db: Session, row_id: int) -> HolidayAttendance:
    row = db.query(HolidayAttendance).filter(HolidayAttendance.id == int(row_id)).first()
    if not row:
        raise NotFoundError('Holiday attendance row not found')
    return row


def respond_holiday(
    db: Session,
    row_id: int,
    parent_id: int,
    approved: bool,
    *,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> HolidayAttendance:
    row = get_attendance_row(db, row_id)
    if int(row.parent_id or 0) != int(parent_id):
        raise AccessDeniedError('Only the linked parent can respond')
    updated = (
        db.query(HolidayAttendance)
        .filter(HolidayAttendance.id == row.id, HolidayAttendance.parent_approved.is_(None))
        .update(
            {
                HolidayAttendance.parent_approved: bool(approved),
                HolidayAttendance.parent_response_date: time_provider.utcnow(),
                HolidayAttendance.notes: notes or '',
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        raise ConflictError('This request has already been answered')
    db.commit()
    db.refresh(row)
    logger.info('holiday_consent_recorded row_id=%s approved=%s', row.id, row.parent_approved)
    return row


def mark_attendance(
    db: Session,
    row_id: int,
    attended: bool | None,
    *,
    marked_by: int | None,
    time_provider: TimeProvider = default_time_provider,
) -> HolidayAttendance:
    """Staff mark attendance independently of parent consent; may be re-marked."""
    row = get_attendance_row(db, row_id)
    row.attended = attended
    row.marked_by = marked_by
    row.marked_at = time_provider.utcnow()
    db.commit()
    db.refresh(row)
    return row


def list_attendance(db: Session, holiday_id: int) -> list[dict]:
    rows = (
        db.query(HolidayAttendance, Student.full_name)
        .join(Student, Student.id == HolidayAttendance.student_id)
        .filter(HolidayAttendance.holiday_id == int(holiday_id))
        .order_by(Student.full_name.asc(), HolidayAttendance.id.asc())
        .all()
    )
    return [
        {
            'id': row.id,
            'student_id': row.student_id,
            'student_name': student_name,
            'parent_id': row.parent_id,
            'parent_approved': row.parent_approved,
            'parent_response_date': row.parent_response_date.isoformat() if row.parent_response_date else None,
            'attended': row.attended,
            'marked_at': row.marked_at.isoformat() if row.marked_at else None,
            'notes': row.notes,
        }
        for row, student_name in rows
    ]


def attendance_summary(db: Session, holiday_id: int) -> dict:
    approved_count, rejected_count, pending_count, attended_count = (
        db.query(
            func.coalesce(func.sum(case((HolidayAttendance.parent_approved.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((HolidayAttendance.parent_approved.is_(False), 1), else_=0)), 0),
            func.coalesce(
                func.sum(
                    case(
                        (HolidayAttendance.parent_approved.is_(None) & HolidayAttendance.parent_id.is_not(None), 1),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(func.sum(case((HolidayAttendance.attended.is_(True), 1), else_=0)), 0),
        )
        .filter(HolidayAttendance.holiday_id == int(holiday_id))
        .one()
    )
    return {
        'approved': int(approved_count),
        'rejected': int(rejected_count),
        'pending': int(pending_count),
        'attended': int(attended_count),
    }


def list_pending_for_parent(db: Session, parent_id: int) -> list[HolidayAttendance]:
    return (
        db.query(HolidayAttendance)
        .join(Holiday, Holiday.id == HolidayAttendance.holiday_id)
        .filter(HolidayAttendance.parent_id == int(parent_id), HolidayAttendance.parent_approved.is_(None))
        .order_by(Holiday.start_date.asc(), HolidayAttendance.id.asc())
        .all()
    )
