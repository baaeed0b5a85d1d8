from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from halaqat.core.errors import ValidationFailedError
from halaqat.models import Role
from halaqat.services.auth_service import create_user
from halaqat.services.center_service import get_center
from halaqat.services.parent_service import DEFAULT_RELATION, create_parent, link_parent_student
from halaqat.services.student_service import create_student


logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = 'يرجى ملء جميع الحقول المطلوبة'


def create_student_with_parent(
    db: Session,
    *,
    student_name: str,
    parent_name: str,
    parent_phone: str,
    center_id: int | None,
    student_phone: str = '',
    birth_date: date | None = None,
    halqa_id: int | None = None,
    parent_work: str = '',
    relation: str = '',
) -> dict:
    """Provision a student and a parent, both with login accounts, in one transaction.

    Usernames are the full names; the parent password is the parent phone and the
    student password is the student phone, falling back to the parent phone.
    """
    clean_student_name = (student_name or '').strip()
    clean_parent_name = (parent_name or '').strip()
    clean_parent_phone = (parent_phone or '').strip()
    if not clean_student_name or not clean_parent_name or not clean_parent_phone or not int(center_id or 0):
        raise ValidationFailedError(MISSING_FIELDS_MESSAGE)
    get_center(db, int(center_id))

    parent_password = clean_parent_phone
    student_password = (student_phone or '').strip() or clean_parent_phone

    try:
        parent_user = create_user(
            db,
            full_name=clean_parent_name,
            password=parent_password,
            role=Role.PARENT.value,
            center_id=center_id,
            phone=clean_parent_phone,
            commit=False,
        )
        parent = create_parent(
            db,
            clean_parent_name,
            clean_parent_phone,
            parent_work,
            center_id=center_id,
            user_id=parent_user.id,
            commit=False,
        )
        student_user = create_user(
            db,
            full_name=clean_student_name,
            password=student_password,
            role=Role.STUDENT.value,
            center_id=center_id,
            phone=student_phone,
            commit=False,
        )
        student = create_student(
            db,
            center_id=int(center_id),
            full_name=clean_student_name,
            phone=student_phone,
            birth_date=birth_date,
            halqa_id=halqa_id,
            user_id=student_user.id,
            commit=False,
        )
        link_parent_student(db, parent.id, student.id, relation or DEFAULT_RELATION, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        'account_student_parent_created student_id=%s parent_id=%s center_id=%s',
        student.id,
        parent.id,
        center_id,
    )
    return {
        'student_id': student.id,
        'parent_id': parent.id,
        'student_user_id': student_user.id,
        'parent_user_id': parent_user.id,
        'credentials': {
            'student': {'username': clean_student_name, 'password': student_password},
            'parent': {'username': clean_parent_name, 'password': parent_password},
        },
        'message': 'تم إنشاء حساب الطالب وولي الأمر بنجاح',
    }
