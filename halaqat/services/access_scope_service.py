from __future__ import annotations

from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from halaqat.core.capabilities import Capability, has_capability, has_role
from halaqat.core.errors import AccessDeniedError, NotFoundError
from halaqat.models import Halqa, Parent, Role, Student, StudentParent
from halaqat.services.center_scope_service import apply_center_scope, get_actor_center_id, is_super_admin


def get_teacher_halqa_ids(db: Session, teacher_id: int, *, center_id: int | None = None) -> set[int]:
    clean_teacher_id = int(teacher_id or 0)
    if clean_teacher_id <= 0:
        return set()
    query = db.query(Halqa.id).filter(Halqa.teacher_id == clean_teacher_id)
    if int(center_id or 0) > 0:
        query = query.filter(Halqa.center_id == int(center_id))
    return {int(halqa_id) for (halqa_id,) in query.all() if halqa_id is not None}


def get_student_for_user(db: Session, user: dict) -> Student:
    student = db.query(Student).filter(Student.user_id == int(user.get('user_id') or 0)).first()
    if not student:
        raise NotFoundError('No student profile for this account')
    return student


def get_parent_for_user(db: Session, user: dict) -> Parent:
    parent = db.query(Parent).filter(Parent.user_id == int(user.get('user_id') or 0)).first()
    if not parent:
        raise NotFoundError('No parent profile for this account')
    return parent


def get_linked_student_ids(db: Session, parent_id: int) -> set[int]:
    rows = db.query(StudentParent.student_id).filter(StudentParent.parent_id == int(parent_id)).all()
    return {int(student_id) for (student_id,) in rows}


def assert_center_access(user: dict, entity_center_id: int | None) -> None:
    if is_super_admin(user) and not get_actor_center_id(user):
        return
    actor_center_id = int(get_actor_center_id(user) or 0)
    if actor_center_id <= 0 or actor_center_id != int(entity_center_id or 0):
        raise AccessDeniedError('Record belongs to another center')


def assert_halqa_access(db: Session, user: dict, halqa: Halqa) -> None:
    """Staff with the all-halaqat capability see the whole center; teachers see their own."""
    assert_center_access(user, halqa.center_id)
    if has_capability(user, Capability.VIEW_ALL_HALAQAT):
        return
    if has_role(user, Role.TEACHER) and int(halqa.teacher_id or 0) == int(user.get('user_id') or 0):
        return
    raise AccessDeniedError('Halqa is outside your scope')


def assert_student_access(db: Session, user: dict, student: Student) -> None:
    assert_center_access(user, student.center_id)
    if has_capability(user, Capability.VIEW_ALL_HALAQAT) or has_capability(user, Capability.MANAGE_STUDENTS):
        return
    if has_role(user, Role.TEACHER):
        halqa_ids = get_teacher_halqa_ids(db, int(user.get('user_id') or 0))
        if int(student.halqa_id or 0) in halqa_ids:
            return
    if has_role(user, Role.STUDENT) and int(student.user_id or 0) == int(user.get('user_id') or 0):
        return
    if has_role(user, Role.PARENT):
        parent = db.query(Parent).filter(Parent.user_id == int(user.get('user_id') or 0)).first()
        if parent and student.id in get_linked_student_ids(db, parent.id):
            return
    raise AccessDeniedError('Student is outside your scope')


def apply_halqa_scope(query: Query, user: dict):
    query = apply_center_scope(query, user)
    if has_capability(user, Capability.VIEW_ALL_HALAQAT):
        return query

    db = query.session
    entity = None
    if query.column_descriptions:
        entity = query.column_descriptions[0].get('entity')
    if db is None or entity is None:
        return query.filter(false())

    if has_role(user, Role.TEACHER):
        halqa_ids = get_teacher_halqa_ids(db, int(user.get('user_id') or 0))
        if not halqa_ids:
            return query.filter(false())
        if getattr(entity, '__tablename__', '') == 'halaqat':
            return query.filter(entity.id.in_(halqa_ids))
        if hasattr(entity, 'halqa_id'):
            return query.filter(entity.halqa_id.in_(halqa_ids))
    return query.filter(false())
