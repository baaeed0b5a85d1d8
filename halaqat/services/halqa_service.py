from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from halaqat.core.errors import ConflictError, NotFoundError, ValidationFailedError
from halaqat.models import AuthUser, Halqa, Role, Student, UserRole
from halaqat.services.access_scope_service import apply_halqa_scope


logger = logging.getLogger(__name__)


def get_halqa(db: Session, halqa_id: int) -> Halqa:
    row = db.query(Halqa).filter(Halqa.id == int(halqa_id)).first()
    if not row:
        raise NotFoundError('Halqa not found')
    return row


def validate_teacher(db: Session, teacher_id: int | None, center_id: int) -> int | None:
    if not int(teacher_id or 0):
        return None
    teacher = db.query(AuthUser).filter(AuthUser.id == int(teacher_id)).first()
    if not teacher:
        raise NotFoundError('Teacher not found')
    is_teacher = (
        db.query(UserRole)
        .filter(UserRole.user_id == teacher.id, UserRole.role == Role.TEACHER.value)
        .first()
    )
    if not is_teacher:
        raise ValidationFailedError('Assigned user is not a teacher')
    if int(teacher.center_id or 0) != int(center_id):
        raise ValidationFailedError('Teacher belongs to another center')
    return teacher.id


def create_halqa(
    db: Session,
    *,
    center_id: int,
    name: str,
    teacher_id: int | None = None,
    max_students: int = 20,
    category: str = '',
) -> Halqa:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Halqa name is required')
    if int(max_students or 0) < 1:
        raise ValidationFailedError('max_students must be at least 1')
    row = Halqa(
        center_id=int(center_id),
        name=clean_name,
        teacher_id=validate_teacher(db, teacher_id, center_id),
        max_students=int(max_students),
        category=(category or '').strip(),
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info('halqa_created halqa_id=%s center_id=%s', row.id, row.center_id)
    return row


def update_halqa(db: Session, halqa_id: int, fields: dict) -> Halqa:
    row = get_halqa(db, halqa_id)
    if 'name' in fields and fields['name'] is not None:
        if not str(fields['name']).strip():
            raise ValidationFailedError('Halqa name is required')
        row.name = str(fields['name']).strip()
    if 'teacher_id' in fields:
        row.teacher_id = validate_teacher(db, fields['teacher_id'], row.center_id)
    if fields.get('max_students') is not None:
        capacity = int(fields['max_students'])
        if capacity < count_active_students(db, row.id):
            raise ConflictError('Capacity is below the current number of students')
        row.max_students = capacity
    if fields.get('category') is not None:
        row.category = str(fields['category']).strip()
    if fields.get('is_active') is not None:
        row.is_active = bool(fields['is_active'])
    db.commit()
    db.refresh(row)
    return row


def list_halaqat(db: Session, user: dict, *, include_inactive: bool = False) -> list[Halqa]:
    query = apply_halqa_scope(db.query(Halqa), user)
    if not include_inactive:
        query = query.filter(Halqa.is_active.is_(True))
    return query.order_by(Halqa.name.asc()).all()


def list_active_students(db: Session, halqa_id: int) -> list[Student]:
    return (
        db.query(Student)
        .filter(Student.halqa_id == int(halqa_id), Student.is_active.is_(True))
        .order_by(Student.full_name.asc(), Student.id.asc())
        .all()
    )


def count_active_students(db: Session, halqa_id: int) -> int:
    return int(
        db.query(func.count(Student.id))
        .filter(Student.halqa_id == int(halqa_id), Student.is_active.is_(True))
        .scalar()
        or 0
    )


def ensure_capacity(db: Session, halqa: Halqa, *, joining: int = 1) -> None:
    if count_active_students(db, halqa.id) + joining > int(halqa.max_students or 0):
        raise ConflictError('Halqa is full')


def assign_student(db: Session, halqa_id: int, student_id: int) -> Student:
    halqa = get_halqa(db, halqa_id)
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student:
        raise NotFoundError('Student not found')
    if int(student.center_id) != int(halqa.center_id):
        raise ValidationFailedError('Student and halqa must belong to the same center')
    if int(student.halqa_id or 0) == halqa.id:
        return student
    if not halqa.is_active:
        raise ConflictError('Halqa is inactive')
    ensure_capacity(db, halqa)
    student.halqa_id = halqa.id
    db.commit()
    db.refresh(student)
    logger.info('halqa_student_assigned halqa_id=%s student_id=%s', halqa.id, student.id)
    return student


def validate_center_halqa_ids(db: Session, center_id: int, halqa_ids: list[int] | None) -> list[int]:
    clean_ids = sorted({int(halqa_id) for halqa_id in halqa_ids or [] if int(halqa_id or 0) > 0})
    if not clean_ids:
        return []
    found = {
        int(halqa_id)
        for (halqa_id,) in db.query(Halqa.id).filter(Halqa.id.in_(clean_ids), Halqa.center_id == int(center_id)).all()
    }
    missing = [halqa_id for halqa_id in clean_ids if halqa_id not in found]
    if missing:
        raise ValidationFailedError(f'Unknown halaqat for this center: {missing}')
    return clean_ids
