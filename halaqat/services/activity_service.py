from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from halaqat.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import Activity, ActivityApproval, ActivityHalqa, Parent, Student, StudentParent
from halaqat.services.center_scope_service import apply_center_scope
from halaqat.services.halqa_service import validate_center_halqa_ids
from halaqat.services.parent_service import list_student_parent_pairs


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('name', 'description', 'location', 'start_date', 'end_date', 'requires_approval', 'is_active')


def get_activity(db: Session, activity_id: int) -> Activity:
    row = db.query(Activity).filter(Activity.id == int(activity_id)).first()
    if not row:
        raise NotFoundError('Activity not found')
    return row


def _fan_out_approvals(db: Session, activity: Activity, halqa_ids: list[int]) -> int:
    existing = {
        (int(student_id), int(parent_id))
        for student_id, parent_id in db.query(ActivityApproval.student_id, ActivityApproval.parent_id)
        .filter(ActivityApproval.activity_id == activity.id)
        .all()
    }
    created = 0
    for student_id, parent_id in list_student_parent_pairs(db, halqa_ids):
        # Consent can only be asked of a linked parent.
        if parent_id is None or (student_id, parent_id) in existing:
            continue
        db.add(ActivityApproval(activity_id=activity.id, student_id=student_id, parent_id=parent_id, approved=None))
        existing.add((student_id, parent_id))
        created += 1
    db.flush()
    return created


def create_activity(
    db: Session,
    *,
    center_id: int,
    name: str,
    start_date: date,
    end_date: date | None = None,
    description: str = '',
    location: str = '',
    requires_approval: bool = True,
    halqa_ids: list[int] | None = None,
    created_by: int | None = None,
) -> Activity:
    """Create an activity and, when consent is required, one pending approval per student/parent pair."""
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Activity name is required')
    if end_date is not None and end_date < start_date:
        raise ValidationFailedError('end_date must not be before start_date')
    clean_halqa_ids = validate_center_halqa_ids(db, center_id, halqa_ids)

    try:
        row = Activity(
            center_id=int(center_id),
            name=clean_name,
            description=description or '',
            location=(location or '').strip(),
            start_date=start_date,
            end_date=end_date,
            requires_approval=bool(requires_approval),
            is_active=True,
            created_by=created_by,
        )
        db.add(row)
        db.flush()
        for halqa_id in clean_halqa_ids:
            db.add(ActivityHalqa(activity_id=row.id, halqa_id=halqa_id))
        created = _fan_out_approvals(db, row, clean_halqa_ids) if row.requires_approval else 0
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    logger.info('activity_created activity_id=%s halaqat=%s approvals=%s', row.id, clean_halqa_ids, created)
    return row


def update_activity(db: Session, activity_id: int, fields: dict) -> Activity:
    row = get_activity(db, activity_id)
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS or value is None:
            continue
        if key == 'name' and not str(value).strip():
            raise ValidationFailedError('Activity name is required')
        setattr(row, key, value)
    if row.end_date is not None and row.end_date < row.start_date:
        raise ValidationFailedError('end_date must not be before start_date')
    if fields.get('halqa_ids') is not None:
        clean_halqa_ids = validate_center_halqa_ids(db, row.center_id, fields['halqa_ids'])
        db.query(ActivityHalqa).filter(ActivityHalqa.activity_id == row.id).delete(synchronize_session=False)
        for halqa_id in clean_halqa_ids:
            db.add(ActivityHalqa(activity_id=row.id, halqa_id=halqa_id))
        if row.requires_approval:
            _fan_out_approvals(db, row, clean_halqa_ids)
    db.commit()
    db.refresh(row)
    return row


def delete_activity(db: Session, activity_id: int) -> None:
    row = get_activity(db, activity_id)
    db.query(ActivityApproval).filter(ActivityApproval.activity_id == row.id).delete(synchronize_session=False)
    db.query(ActivityHalqa).filter(ActivityHalqa.activity_id == row.id).delete(synchronize_session=False)
    db.delete(row)
    db.commit()
    logger.info('activity_deleted activity_id=%s', activity_id)


def list_activities(db: Session, user: dict | None, *, include_inactive: bool = False) -> list[Activity]:
    query = apply_center_scope(db.query(Activity), user)
    if not include_inactive:
        query = query.filter(Activity.is_active.is_(True))
    return query.order_by(Activity.start_date.desc(), Activity.id.desc()).all()


def activity_halqa_ids(db: Session, activity_id: int) -> list[int]:
    rows = db.query(ActivityHalqa.halqa_id).filter(ActivityHalqa.activity_id == int(activity_id)).all()
    return sorted(int(halqa_id) for (halqa_id,) in rows)


def request_approval(db: Session, activity_id: int, student_id: int, parent_id: int) -> ActivityApproval:
    activity = get_activity(db, activity_id)
    link = (
        db.query(StudentParent)
        .filter(StudentParent.student_id == int(student_id), StudentParent.parent_id == int(parent_id))
        .first()
    )
    if not link:
        raise ValidationFailedError('Parent is not linked to this student')
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student or int(student.center_id) != int(activity.center_id):
        raise NotFoundError('Student not found')
    duplicate = (
        db.query(ActivityApproval)
        .filter(
            ActivityApproval.activity_id == activity.id,
            ActivityApproval.student_id == int(student_id),
            ActivityApproval.parent_id == int(parent_id),
        )
        .first()
    )
    if duplicate:
        raise ConflictError('تم إرسال طلب موافقة مسبقاً')
    row = ActivityApproval(activity_id=activity.id, student_id=int(student_id), parent_id=int(parent_id), approved=None)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def respond_approval(
    db: Session,
    approval_id: int,
    parent_id: int,
    approved: bool,
    *,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> ActivityApproval:
    """Record a parent's one-time answer to an activity consent request."""
    row = db.query(ActivityApproval).filter(ActivityApproval.id == int(approval_id)).first()
    if not row:
        raise NotFoundError('Approval request not found')
    if int(row.parent_id) != int(parent_id):
        raise AccessDeniedError('Only the linked parent can respond')
    updated = (
        db.query(ActivityApproval)
        .filter(ActivityApproval.id == row.id, ActivityApproval.approved.is_(None))
        .update(
            {
                ActivityApproval.approved: bool(approved),
                ActivityApproval.notes: notes or '',
                ActivityApproval.response_date: time_provider.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        raise ConflictError('This request has already been answered')
    db.commit()
    db.refresh(row)
    logger.info('activity_consent_recorded approval_id=%s approved=%s', row.id, row.approved)
    return row


def list_approvals(db: Session, activity_id: int) -> list[dict]:
    rows = (
        db.query(ActivityApproval, Student.full_name, Parent.full_name)
        .join(Student, Student.id == ActivityApproval.student_id)
        .join(Parent, Parent.id == ActivityApproval.parent_id)
        .filter(ActivityApproval.activity_id == int(activity_id))
        .order_by(Student.full_name.asc(), ActivityApproval.id.asc())
        .all()
    )
    return [
        {
            'id': approval.id,
            'student_id': approval.student_id,
            'student_name': student_name,
            'parent_id': approval.parent_id,
            'parent_name': parent_name,
            'approved': approval.approved,
            'notes': approval.notes,
            'response_date': approval.response_date.isoformat() if approval.response_date else None,
        }
        for approval, student_name, parent_name in rows
    ]


def approval_summary(db: Session, activity_id: int) -> dict:
    approved_count, rejected_count, pending_count = (
        db.query(
            func.coalesce(func.sum(case((ActivityApproval.approved.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((ActivityApproval.approved.is_(False), 1), else_=0)), 0),
            func.coalesce(func.sum(case((ActivityApproval.approved.is_(None), 1), else_=0)), 0),
        )
        .filter(ActivityApproval.activity_id == int(activity_id))
        .one()
    )
    return {'approved': int(approved_count), 'rejected': int(rejected_count), 'pending': int(pending_count)}


def list_pending_for_parent(db: Session, parent_id: int) -> list[ActivityApproval]:
    return (
        db.query(ActivityApproval)
        .join(Activity, Activity.id == ActivityApproval.activity_id)
        .filter(
            ActivityApproval.parent_id == int(parent_id),
            ActivityApproval.approved.is_(None),
            Activity.is_active.is_(True),
        )
        .order_by(Activity.start_date.asc(), ActivityApproval.id.asc())
        .all()
    )
