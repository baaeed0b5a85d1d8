from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from halaqat.core.errors import NotFoundError, ValidationFailedError
from halaqat.core.phone import normalize_phone
from halaqat.models import Parent, Student, StudentParent


logger = logging.getLogger(__name__)

DEFAULT_RELATION = 'أب'


def get_parent(db: Session, parent_id: int) -> Parent:
    row = db.query(Parent).filter(Parent.id == int(parent_id)).first()
    if not row:
        raise NotFoundError('Parent not found')
    return row


def create_parent(
    db: Session,
    full_name: str,
    phone: str = '',
    work: str = '',
    *,
    center_id: int | None,
    user_id: int | None = None,
    commit: bool = True,
) -> Parent:
    if center_id is None:
        raise ValidationFailedError('center_id is required')
    clean_name = (full_name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Parent name is required')
    row = Parent(
        full_name=clean_name,
        phone=normalize_phone(phone),
        work=(work or '').strip(),
        center_id=int(center_id),
        user_id=user_id,
    )
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    return row


def link_parent_student(
    db: Session,
    parent_id: int,
    student_id: int,
    relation: str = DEFAULT_RELATION,
    *,
    commit: bool = True,
) -> StudentParent:
    parent = db.query(Parent).filter(Parent.id == parent_id).first()
    if not parent:
        raise NotFoundError('Parent not found')
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError('Student not found')
    if int(parent.center_id or 0) != int(student.center_id or 0):
        raise ValidationFailedError('Parent and student must belong to the same center')

    existing = db.query(StudentParent).filter(
        StudentParent.parent_id == parent_id,
        StudentParent.student_id == student_id,
    ).first()
    if existing:
        return existing

    row = StudentParent(parent_id=parent_id, student_id=student_id, relation=(relation or DEFAULT_RELATION).strip())
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    logger.info('parent_student_linked parent_id=%s student_id=%s', parent_id, student_id)
    return row


def unlink_parent_student(db: Session, parent_id: int, student_id: int) -> bool:
    deleted = (
        db.query(StudentParent)
        .filter(StudentParent.parent_id == int(parent_id), StudentParent.student_id == int(student_id))
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def get_parents_for_student(db: Session, student_id: int) -> list[Parent]:
    links = db.query(StudentParent).filter(StudentParent.student_id == student_id).all()
    parent_ids = [l.parent_id for l in links]
    if not parent_ids:
        return []
    return db.query(Parent).filter(Parent.id.in_(parent_ids)).order_by(Parent.id.asc()).all()


def list_children(db: Session, parent_id: int) -> list[Student]:
    return (
        db.query(Student)
        .join(StudentParent, StudentParent.student_id == Student.id)
        .filter(StudentParent.parent_id == int(parent_id))
        .order_by(Student.full_name.asc())
        .all()
    )


def list_student_parent_pairs(db: Session, halqa_ids: list[int]) -> list[tuple[int, int | None]]:
    """(student, parent) pairs for active students of the given halaqat.

    Students without a linked parent yield one pair with parent None.
    """
    clean_ids = sorted({int(halqa_id) for halqa_id in halqa_ids or [] if int(halqa_id or 0) > 0})
    if not clean_ids:
        return []
    rows = (
        db.query(Student.id, StudentParent.parent_id)
        .outerjoin(StudentParent, StudentParent.student_id == Student.id)
        .filter(Student.halqa_id.in_(clean_ids), Student.is_active.is_(True))
        .order_by(Student.id.asc(), StudentParent.parent_id.asc())
        .all()
    )
    return [(int(student_id), int(parent_id) if parent_id is not None else None) for student_id, parent_id in rows]
