from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from halaqat.core.errors import ConflictError, NotFoundError, ValidationFailedError
from halaqat.models import BadgeRequirement, BadgeSetting, Halqa, HalqaBadge, PointSource, Student, StudentBadge
from halaqat.services.center_scope_service import apply_center_scope
from halaqat.services.ledger_service import add_point_entry, award_halqa_points


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('name', 'description', 'icon_name', 'points_value', 'requirements_type', 'requirements_value', 'is_active')


def _clean_requirement(requirements_type: str, requirements_value: dict | None) -> tuple[str, dict]:
    try:
        parsed = BadgeRequirement(str(requirements_type or '').strip())
    except ValueError as exc:
        raise ValidationFailedError(f'Unknown requirement type: {requirements_type}') from exc
    value = dict(requirements_value or {})
    for key, threshold in value.items():
        if not isinstance(threshold, (int, float)) or threshold < 0:
            raise ValidationFailedError(f'Requirement {key} must be a non-negative number')
    return parsed.value, value


def get_badge_setting(db: Session, badge_setting_id: int) -> BadgeSetting:
    row = db.query(BadgeSetting).filter(BadgeSetting.id == int(badge_setting_id)).first()
    if not row:
        raise NotFoundError('Badge not found')
    return row


def list_badge_settings(db: Session, user: dict | None, *, include_inactive: bool = False) -> list[BadgeSetting]:
    query = apply_center_scope(db.query(BadgeSetting), user)
    if not include_inactive:
        query = query.filter(BadgeSetting.is_active.is_(True))
    return query.order_by(BadgeSetting.name.asc()).all()


def create_badge_setting(
    db: Session,
    *,
    name: str,
    center_id: int | None,
    description: str = '',
    icon_name: str = 'award',
    points_value: int = 0,
    requirements_type: str = BadgeRequirement.EXCELLENT_DAYS.value,
    requirements_value: dict | None = None,
) -> BadgeSetting:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Badge name is required')
    req_type, req_value = _clean_requirement(requirements_type, requirements_value)
    row = BadgeSetting(
        center_id=center_id,
        name=clean_name,
        description=description or '',
        icon_name=(icon_name or 'award').strip(),
        points_value=int(points_value or 0),
        requirements_type=req_type,
        requirements_value=req_value,
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_badge_setting(db: Session, badge_setting_id: int, fields: dict) -> BadgeSetting:
    row = get_badge_setting(db, badge_setting_id)
    if 'requirements_type' in fields or 'requirements_value' in fields:
        req_type, req_value = _clean_requirement(
            fields.get('requirements_type') or row.requirements_type,
            fields['requirements_value'] if fields.get('requirements_value') is not None else row.requirements_value,
        )
        row.requirements_type = req_type
        row.requirements_value = req_value
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS or key.startswith('requirements_') or value is None:
            continue
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def award_badge(
    db: Session,
    student_id: int,
    badge_setting_id: int,
    *,
    notes: str = '',
    awarded_by: int | None = None,
    commit: bool = True,
) -> StudentBadge:
    """Record one badge award and its points.

    A badge may be earned many times; each award is its own row.
    """
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student:
        raise NotFoundError('Student not found')
    badge = get_badge_setting(db, badge_setting_id)
    if not badge.is_active:
        raise ConflictError('Badge is not active')
    if badge.center_id is not None and int(badge.center_id) != int(student.center_id):
        raise ValidationFailedError('Badge belongs to another center')

    award = StudentBadge(student_id=student.id, badge_setting_id=badge.id, notes=notes or '', awarded_by=awarded_by)
    db.add(award)
    if int(badge.points_value or 0) != 0:
        add_point_entry(
            db,
            student_id=student.id,
            points=int(badge.points_value),
            reason=f'وسام: {badge.name}',
            source=PointSource.BADGE,
            created_by=awarded_by,
        )
    if commit:
        db.commit()
        db.refresh(award)
    else:
        db.flush()
    logger.info('badge_awarded student_id=%s badge_setting_id=%s award_id=%s', student.id, badge.id, award.id)
    return award


def list_student_badges(db: Session, student_id: int) -> list[StudentBadge]:
    return (
        db.query(StudentBadge)
        .filter(StudentBadge.student_id == int(student_id))
        .order_by(StudentBadge.earned_at.desc(), StudentBadge.id.desc())
        .all()
    )


def award_halqa_badge(
    db: Session,
    halqa_id: int,
    badge_name: str,
    *,
    points_value: int = 0,
    description: str = '',
    actor: dict | None = None,
) -> HalqaBadge:
    halqa = db.query(Halqa).filter(Halqa.id == int(halqa_id)).first()
    if not halqa:
        raise NotFoundError('Halqa not found')
    clean_name = (badge_name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Badge name is required')
    row = HalqaBadge(halqa_id=halqa.id, badge_name=clean_name, description=description or '', points_value=int(points_value or 0))
    db.add(row)
    if row.points_value != 0:
        award_halqa_points(db, halqa.id, row.points_value, f'وسام: {clean_name}', actor=actor, commit=False)
    db.commit()
    db.refresh(row)
    logger.info('halqa_badge_awarded halqa_id=%s badge=%s', halqa.id, clean_name)
    return row


def list_halqa_badges(db: Session, halqa_id: int) -> list[HalqaBadge]:
    return (
        db.query(HalqaBadge)
        .filter(HalqaBadge.halqa_id == int(halqa_id))
        .order_by(HalqaBadge.earned_at.desc(), HalqaBadge.id.desc())
        .all()
    )
