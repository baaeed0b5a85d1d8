from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import BadgeSetting, StudentBadge
from halaqat.schemas import (
    BadgeAwardRequest,
    BadgeSettingCreateRequest,
    BadgeSettingUpdateRequest,
    HalqaBadgeAwardRequest,
)
from halaqat.services.access_scope_service import (
    assert_center_access,
    assert_halqa_access,
    assert_student_access,
)
from halaqat.services.badge_service import (
    award_badge,
    award_halqa_badge,
    create_badge_setting,
    get_badge_setting,
    list_badge_settings,
    list_halqa_badges,
    list_student_badges,
    update_badge_setting,
)
from halaqat.services.center_scope_service import get_actor_center_id, is_super_admin
from halaqat.services.halqa_service import get_halqa
from halaqat.services.student_service import get_student


router = APIRouter(prefix='/badges', tags=['Badges'])


def _serialize_setting(row: BadgeSetting) -> dict:
    return {
        'id': row.id,
        'center_id': row.center_id,
        'name': row.name,
        'description': row.description,
        'icon_name': row.icon_name,
        'points_value': row.points_value,
        'requirements_type': row.requirements_type,
        'requirements_value': row.requirements_value or {},
        'is_active': row.is_active,
    }


def _serialize_award(row: StudentBadge) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'badge_setting_id': row.badge_setting_id,
        'notes': row.notes,
        'earned_at': row.earned_at.isoformat() if row.earned_at else None,
    }


def _assert_setting_editable(user: dict, row: BadgeSetting) -> None:
    if row.center_id is None:
        if not is_super_admin(user):
            raise HTTPException(status_code=403, detail='Global badges are managed by super admins')
        return
    with domain_errors():
        assert_center_access(user, row.center_id)


@router.get('/settings')
def settings_list(request: Request, include_inactive: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    return [_serialize_setting(row) for row in list_badge_settings(db, user, include_inactive=include_inactive)]


@router.post('/settings')
def settings_create(payload: BadgeSettingCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_BADGES)
    if payload.global_badge and not is_super_admin(user):
        raise HTTPException(status_code=403, detail='Global badges are managed by super admins')
    center_id = None if payload.global_badge else get_actor_center_id(user)
    if center_id is None and not payload.global_badge:
        raise HTTPException(status_code=400, detail='center_id is required')
    with domain_errors():
        row = create_badge_setting(
            db,
            name=payload.name,
            center_id=center_id,
            description=payload.description,
            icon_name=payload.icon_name,
            points_value=payload.points_value,
            requirements_type=payload.requirements_type,
            requirements_value=payload.requirements_value,
        )
    return _serialize_setting(row)


@router.patch('/settings/{badge_setting_id}')
def settings_update(
    badge_setting_id: int,
    payload: BadgeSettingUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_BADGES)
    with domain_errors():
        row = get_badge_setting(db, badge_setting_id)
    _assert_setting_editable(user, row)
    with domain_errors():
        row = update_badge_setting(db, badge_setting_id, payload.model_dump(exclude_unset=True))
    return _serialize_setting(row)


@router.post('/award')
def award(payload: BadgeAwardRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.AWARD_POINTS)
    with domain_errors():
        assert_student_access(db, user, get_student(db, payload.student_id))
        row = award_badge(
            db,
            payload.student_id,
            payload.badge_setting_id,
            notes=payload.notes,
            awarded_by=user['user_id'],
        )
    return _serialize_award(row)


@router.get('/students/{student_id}')
def student_badges(student_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_student_access(db, user, get_student(db, student_id))
    return [_serialize_award(row) for row in list_student_badges(db, student_id)]


@router.post('/halqa-award')
def award_halqa(payload: HalqaBadgeAwardRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.AWARD_POINTS)
    with domain_errors():
        assert_halqa_access(db, user, get_halqa(db, payload.halqa_id))
        row = award_halqa_badge(
            db,
            payload.halqa_id,
            payload.badge_name,
            points_value=payload.points_value,
            description=payload.description,
            actor=user,
        )
    return {
        'id': row.id,
        'halqa_id': row.halqa_id,
        'badge_name': row.badge_name,
        'points_value': row.points_value,
        'earned_at': row.earned_at.isoformat() if row.earned_at else None,
    }


@router.get('/halaqat/{halqa_id}')
def halqa_badges(halqa_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        assert_center_access(user, get_halqa(db, halqa_id).center_id)
    return [
        {
            'id': row.id,
            'badge_name': row.badge_name,
            'description': row.description,
            'points_value': row.points_value,
            'earned_at': row.earned_at.isoformat() if row.earned_at else None,
        }
        for row in list_halqa_badges(db, halqa_id)
    ]
