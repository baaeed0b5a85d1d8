from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.core.errors import InsufficientBalanceError, NotFoundError, ValidationFailedError
from halaqat.models import (
    ConversionType,
    Halqa,
    HalqaPointEntry,
    PointEntry,
    PointSource,
    PointsConversion,
    PurchaseRequest,
    Student,
    StudentBadge,
)


logger = logging.getLogger(__name__)


def _points_sum(db: Session, student_id: int, *, exclude_refunds: bool) -> int:
    query = db.query(func.coalesce(func.sum(PointEntry.points), 0)).filter(PointEntry.student_id == int(student_id))
    if exclude_refunds:
        query = query.filter(PointEntry.source != PointSource.REFUND.value)
    return int(query.scalar() or 0)


def _spent_sum(db: Session, column, student_id: int) -> int:
    return int(
        db.query(func.coalesce(func.sum(column), 0))
        .filter(PurchaseRequest.student_id == int(student_id))
        .scalar()
        or 0
    )


def total_points(db: Session, student_id: int) -> int:
    """Lifetime points earned, net of conversions; refunds are not earnings."""
    return _points_sum(db, student_id, exclude_refunds=True)


def available_points(db: Session, student_id: int) -> int:
    # Every purchase ever made is charged; rejected ones are offset by their refund entry.
    return _points_sum(db, student_id, exclude_refunds=False) - _spent_sum(db, PurchaseRequest.points_spent, student_id)


def earned_badges(db: Session, student_id: int) -> int:
    return int(
        db.query(func.count(StudentBadge.id)).filter(StudentBadge.student_id == int(student_id)).scalar() or 0
    )


def available_badges(db: Session, student_id: int) -> int:
    converted = int(
        db.query(func.coalesce(func.sum(PointsConversion.badges_delta), 0))
        .filter(PointsConversion.student_id == int(student_id))
        .scalar()
        or 0
    )
    spent = _spent_sum(db, PurchaseRequest.badges_spent, student_id)
    return earned_badges(db, student_id) + converted - spent


def student_balance(db: Session, student_id: int) -> dict:
    return {
        'student_id': int(student_id),
        'total_points': total_points(db, student_id),
        'available_points': available_points(db, student_id),
        'earned_badges': earned_badges(db, student_id),
        'available_badges': available_badges(db, student_id),
    }


def group_total_points(db: Session, halqa_id: int) -> int:
    return int(
        db.query(func.coalesce(func.sum(HalqaPointEntry.points), 0))
        .filter(HalqaPointEntry.halqa_id == int(halqa_id))
        .scalar()
        or 0
    )


def points_history(db: Session, student_id: int, *, limit: int = 100) -> list[PointEntry]:
    return (
        db.query(PointEntry)
        .filter(PointEntry.student_id == int(student_id))
        .order_by(PointEntry.created_at.desc(), PointEntry.id.desc())
        .limit(max(1, int(limit)))
        .all()
    )


def add_point_entry(
    db: Session,
    *,
    student_id: int,
    points: int,
    reason: str,
    source: PointSource = PointSource.MANUAL,
    created_by: int | None = None,
    report_entry_id: int | None = None,
    recitation_id: int | None = None,
    purchase_id: int | None = None,
) -> PointEntry:
    """Append one ledger row in the caller's transaction; the caller commits."""
    if int(points) == 0:
        raise ValidationFailedError('Points must be non-zero')
    row = PointEntry(
        student_id=int(student_id),
        points=int(points),
        reason=(reason or '').strip(),
        source=PointSource(source).value,
        created_by=created_by,
        report_entry_id=report_entry_id,
        recitation_id=recitation_id,
        purchase_id=purchase_id,
    )
    db.add(row)
    db.flush()
    return row


def award_points(db: Session, student_id: int, points: int, reason: str, *, actor: dict | None = None) -> PointEntry:
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student:
        raise NotFoundError('Student not found')
    if not (reason or '').strip():
        raise ValidationFailedError('A reason is required')
    row = add_point_entry(
        db,
        student_id=student.id,
        points=points,
        reason=reason,
        source=PointSource.MANUAL,
        created_by=int((actor or {}).get('user_id') or 0) or None,
    )
    db.commit()
    db.refresh(row)
    logger.info('points_awarded student_id=%s points=%s entry_id=%s', student.id, row.points, row.id)
    return row


def award_halqa_points(
    db: Session,
    halqa_id: int,
    points: int,
    reason: str,
    *,
    actor: dict | None = None,
    commit: bool = True,
) -> HalqaPointEntry:
    halqa = db.query(Halqa).filter(Halqa.id == int(halqa_id)).first()
    if not halqa:
        raise NotFoundError('Halqa not found')
    if int(points) == 0:
        raise ValidationFailedError('Points must be non-zero')
    row = HalqaPointEntry(
        halqa_id=halqa.id,
        points=int(points),
        reason=(reason or '').strip(),
        created_by=int((actor or {}).get('user_id') or 0) or None,
    )
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    logger.info('halqa_points_awarded halqa_id=%s points=%s', halqa.id, row.points)
    return row


def leaderboard(
    db: Session,
    *,
    center_id: int | None = None,
    halqa_id: int | None = None,
    limit: int = 10,
) -> list[dict]:
    earned = (
        db.query(
            PointEntry.student_id.label('student_id'),
            func.sum(PointEntry.points).label('points'),
        )
        .filter(PointEntry.source != PointSource.REFUND.value)
        .group_by(PointEntry.student_id)
        .subquery()
    )
    total = func.coalesce(earned.c.points, 0)
    query = (
        db.query(Student.id, Student.full_name, Student.halqa_id, total.label('total_points'))
        .outerjoin(earned, earned.c.student_id == Student.id)
        .filter(Student.is_active.is_(True))
    )
    if int(center_id or 0):
        query = query.filter(Student.center_id == int(center_id))
    if int(halqa_id or 0):
        query = query.filter(Student.halqa_id == int(halqa_id))
    rows = query.order_by(total.desc(), Student.full_name.asc()).limit(max(1, int(limit))).all()
    return [
        {
            'rank': index + 1,
            'student_id': int(student_id),
            'full_name': full_name,
            'halqa_id': halqa,
            'total_points': int(points or 0),
        }
        for index, (student_id, full_name, halqa, points) in enumerate(rows)
    ]


def convert_points_to_badges(db: Session, student_id: int, amount: int) -> PointsConversion:
    if int(amount or 0) < 1:
        raise ValidationFailedError('Amount must be at least 1')
    cost = int(amount) * settings.points_per_badge
    available = available_points(db, student_id)
    if available < cost:
        raise InsufficientBalanceError(f'Not enough points: need {cost}, have {available}')
    row = PointsConversion(
        student_id=int(student_id),
        conversion_type=ConversionType.POINTS_TO_BADGES.value,
        amount=int(amount),
        points_delta=-cost,
        badges_delta=int(amount),
    )
    db.add(row)
    add_point_entry(
        db,
        student_id=student_id,
        points=-cost,
        reason=f'تحويل {cost} نقطة إلى {int(amount)} وسام',
        source=PointSource.CONVERSION,
    )
    db.commit()
    db.refresh(row)
    logger.info('points_converted_to_badges student_id=%s amount=%s cost=%s', student_id, amount, cost)
    return row


def convert_badges_to_points(db: Session, student_id: int, amount: int) -> PointsConversion:
    if int(amount or 0) < 1:
        raise ValidationFailedError('Amount must be at least 1')
    available = available_badges(db, student_id)
    if available < int(amount):
        raise InsufficientBalanceError(f'Not enough badges: need {int(amount)}, have {available}')
    gain = int(amount) * settings.points_per_badge
    row = PointsConversion(
        student_id=int(student_id),
        conversion_type=ConversionType.BADGES_TO_POINTS.value,
        amount=int(amount),
        points_delta=gain,
        badges_delta=-int(amount),
    )
    db.add(row)
    add_point_entry(
        db,
        student_id=student_id,
        points=gain,
        reason=f'تحويل {int(amount)} وسام إلى {gain} نقطة',
        source=PointSource.CONVERSION,
    )
    db.commit()
    db.refresh(row)
    logger.info('badges_converted_to_points student_id=%s amount=%s gain=%s', student_id, amount, gain)
    return row


def list_conversions(db: Session, student_id: int) -> list[PointsConversion]:
    return (
        db.query(PointsConversion)
        .filter(PointsConversion.student_id == int(student_id))
        .order_by(PointsConversion.created_at.desc(), PointsConversion.id.desc())
        .all()
    )
