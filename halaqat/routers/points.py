from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import PointEntry, PointsConversion
from halaqat.schemas import ConversionRequest, HalqaPointsAwardRequest, PointsAwardRequest
from halaqat.services.access_scope_service import (
    assert_center_access,
    assert_halqa_access,
    assert_student_access,
    get_student_for_user,
)
from halaqat.services.center_scope_service import get_actor_center_id
from halaqat.services.halqa_service import get_halqa
from halaqat.services.ledger_service import (
    award_halqa_points,
    award_points,
    convert_badges_to_points,
    convert_points_to_badges,
    group_total_points,
    leaderboard,
    list_conversions,
    points_history,
    student_balance,
)
from halaqat.services.student_service import get_student


router = APIRouter(prefix='/points', tags=['Points'])


def _serialize_entry(row: PointEntry) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'points': row.points,
        'reason': row.reason,
        'source': row.source,
        'report_entry_id': row.report_entry_id,
        'recitation_id': row.recitation_id,
        'purchase_id': row.purchase_id,
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }


def _serialize_conversion(row: PointsConversion) -> dict:
    return {
        'id': row.id,
        'conversion_type': row.conversion_type,
        'amount': row.amount,
        'points_delta': row.points_delta,
        'badges_delta': row.badges_delta,
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }


@router.get('/me')
def my_balance(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        student = get_student_for_user(db, user)
    return student_balance(db, student.id)


@router.get('/students/{student_id}/balance')
def balance(student_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_student_access(db, user, get_student(db, student_id))
    return student_balance(db, student_id)


@router.get('/students/{student_id}/history')
def history(student_id: int, request: Request, limit: int = 100, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_student_access(db, user, get_student(db, student_id))
    return [_serialize_entry(row) for row in points_history(db, student_id, limit=max(1, min(limit, 500)))]


@router.post('/award')
def award(payload: PointsAwardRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.AWARD_POINTS)
    with domain_errors():
        assert_student_access(db, user, get_student(db, payload.student_id))
        row = award_points(db, payload.student_id, payload.points, payload.reason, actor=user)
    return _serialize_entry(row)


@router.post('/halqa-award')
def award_halqa(payload: HalqaPointsAwardRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.AWARD_POINTS)
    with domain_errors():
        assert_halqa_access(db, user, get_halqa(db, payload.halqa_id))
        row = award_halqa_points(db, payload.halqa_id, payload.points, payload.reason, actor=user)
    return {
        'id': row.id,
        'halqa_id': row.halqa_id,
        'points': row.points,
        'reason': row.reason,
        'total_points': group_total_points(db, row.halqa_id),
    }


@router.get('/halaqat/{halqa_id}/total')
def halqa_total(halqa_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_center_access(user, get_halqa(db, halqa_id).center_id)
    return {'halqa_id': halqa_id, 'total_points': group_total_points(db, halqa_id)}


@router.get('/leaderboard')
def ranking(request: Request, halqa_id: int | None = None, limit: int = 10, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        if halqa_id:
            assert_center_access(user, get_halqa(db, halqa_id).center_id)
    return leaderboard(
        db,
        center_id=get_actor_center_id(user),
        halqa_id=halqa_id,
        limit=max(1, min(limit, 100)),
    )


@router.post('/convert/points-to-badges')
def points_to_badges(payload: ConversionRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.PURCHASE_ITEMS)
    with domain_errors():
        student = get_student_for_user(db, user)
        row = convert_points_to_badges(db, student.id, payload.amount)
    return {'conversion': _serialize_conversion(row), 'balance': student_balance(db, student.id)}


@router.post('/convert/badges-to-points')
def badges_to_points(payload: ConversionRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.PURCHASE_ITEMS)
    with domain_errors():
        student = get_student_for_user(db, user)
        row = convert_badges_to_points(db, student.id, payload.amount)
    return {'conversion': _serialize_conversion(row), 'balance': student_balance(db, student.id)}


@router.get('/conversions/me')
def my_conversions(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        student = get_student_for_user(db, user)
    return [_serialize_conversion(row) for row in list_conversions(db, student.id)]
