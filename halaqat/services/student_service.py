from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability, has_capability
from halaqat.core.errors import NotFoundError, ValidationFailedError
from halaqat.core.phone import normalize_phone
from halaqat.models import Student
from halaqat.services.access_scope_service import apply_halqa_scope
from halaqat.services.center_scope_service import apply_center_scope
from halaqat.services.halqa_service import ensure_capacity, get_halqa


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('full_name', 'phone', 'birth_date', 'notes', 'previous_surah', 'previous_ayah', 'is_active')


def get_student(db: Session, student_id: int) -> Student:
    row = db.query(Student).filter(Student.id == int(student_id)).first()
    if not row:
        raise NotFoundError('Student not found')
    return row


def create_student(
    db: Session,
    *,
    center_id: int,
    full_name: str,
    phone: str = '',
    birth_date: date | None = None,
    halqa_id: int | None = None,
    notes: str = '',
    previous_surah: str = '',
    previous_ayah: int | None = None,
    user_id: int | None = None,
    commit: bool = True,
) -> Student:
    clean_name = (full_name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Student name is required')
    if previous_ayah is not None and int(previous_ayah) < 1:
        raise ValidationFailedError('previous_ayah must be at least 1')
    if int(halqa_id or 0):
        halqa = get_halqa(db, int(halqa_id))
        if int(halqa.center_id) != int(center_id):
            raise ValidationFailedError('Halqa belongs to another center')
        ensure_capacity(db, halqa)
    row = Student(
        center_id=int(center_id),
        halqa_id=int(halqa_id) if int(halqa_id or 0) else None,
        user_id=user_id,
        full_name=clean_name,
        phone=normalize_phone(phone),
        birth_date=birth_date,
        notes=notes or '',
        previous_surah=(previous_surah or '').strip(),
        previous_ayah=previous_ayah,
        is_active=True,
    )
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    logger.info('student_created student_id=%s center_id=%s halqa_id=%s', row.id, row.center_id, row.halqa_id)
    return row


def update_student(db: Session, student_id: int, fields: dict) -> Student:
    row = get_student(db, student_id)
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS or value is None:
            continue
        if key == 'full_name' and not str(value).strip():
            raise ValidationFailedError('Student name is required')
        if key == 'phone':
            value = normalize_phone(value)
        setattr(row, key, value)
    if 'halqa_id' in fields:
        target = int(fields['halqa_id'] or 0)
        if target and target != int(row.halqa_id or 0):
            halqa = get_halqa(db, target)
            if int(halqa.center_id) != int(row.center_id):
                raise ValidationFailedError('Halqa belongs to another center')
            ensure_capacity(db, halqa)
        row.halqa_id = target or None
    db.commit()
    db.refresh(row)
    return row


def list_students(
    db: Session,
    user: dict,
    *,
    halqa_id: int | None = None,
    search: str = '',
    include_inactive: bool = False,
) -> list[Student]:
    query = db.query(Student)
    if has_capability(user, Capability.MANAGE_STUDENTS):
        query = apply_center_scope(query, user)
    else:
        query = apply_halqa_scope(query, user)
    if int(halqa_id or 0):
        query = query.filter(Student.halqa_id == int(halqa_id))
    if not include_inactive:
        query = query.filter(Student.is_active.is_(True))
    clean_search = (search or '').strip()
    if clean_search:
        query = query.filter(Student.full_name.ilike(f'%{clean_search}%'))
    return query.order_by(Student.full_name.asc()).all()


def set_student_photo(db: Session, student_id: int, photo_url: str) -> Student:
    row = get_student(db, student_id)
    row.photo_url = photo_url
    db.commit()
    db.refresh(row)
    return row
