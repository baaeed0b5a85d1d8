from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability, resolve_center_id
from halaqat.db import get_db
from halaqat.models import Activity, ActivityApproval
from halaqat.schemas import (
    ActivityCreateRequest,
    ActivityUpdateRequest,
    ApprovalRequestCreate,
    ConsentResponseRequest,
)
from halaqat.services.access_scope_service import assert_center_access, get_parent_for_user
from halaqat.services.activity_service import (
    activity_halqa_ids,
    approval_summary,
    create_activity,
    delete_activity,
    get_activity,
    list_activities,
    list_approvals,
    list_pending_for_parent,
    request_approval,
    respond_approval,
    update_activity,
)


router = APIRouter(prefix='/activities', tags=['Activities'])


def _serialize_activity(db: Session, row: Activity) -> dict:
    return {
        'id': row.id,
        'center_id': row.center_id,
        'name': row.name,
        'description': row.description,
        'location': row.location,
        'start_date': row.start_date.isoformat(),
        'end_date': row.end_date.isoformat() if row.end_date else None,
        'requires_approval': row.requires_approval,
        'is_active': row.is_active,
        'halqa_ids': activity_halqa_ids(db, row.id),
    }


def _serialize_approval(row: ActivityApproval) -> dict:
    return {
        'id': row.id,
        'activity_id': row.activity_id,
        'student_id': row.student_id,
        'parent_id': row.parent_id,
        'approved': row.approved,
        'notes': row.notes,
        'response_date': row.response_date.isoformat() if row.response_date else None,
    }


def _load_managed(db: Session, user: dict, activity_id: int) -> Activity:
    require_capability(user, Capability.MANAGE_ACTIVITIES)
    with domain_errors():
        row = get_activity(db, activity_id)
        assert_center_access(user, row.center_id)
    return row


@router.get('')
def list_all(request: Request, include_inactive: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    return [_serialize_activity(db, row) for row in list_activities(db, user, include_inactive=include_inactive)]


@router.post('')
def create(payload: ActivityCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_ACTIVITIES)
    center_id = resolve_center_id(user, payload.center_id)
    with domain_errors():
        row = create_activity(
            db,
            center_id=center_id,
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
            description=payload.description,
            location=payload.location,
            requires_approval=payload.requires_approval,
            halqa_ids=payload.halqa_ids,
            created_by=user['user_id'],
        )
    return _serialize_activity(db, row)


@router.get('/pending')
def pending_for_parent(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.RESPOND_CONSENT)
    with domain_errors():
        parent = get_parent_for_user(db, user)
    return [_serialize_approval(row) for row in list_pending_for_parent(db, parent.id)]


@router.post('/approvals/{approval_id}/respond')
def respond(approval_id: int, payload: ConsentResponseRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.RESPOND_CONSENT)
    with domain_errors():
        parent = get_parent_for_user(db, user)
        row = respond_approval(db, approval_id, parent.id, payload.approved, notes=payload.notes)
    return _serialize_approval(row)


@router.patch('/{activity_id}')
def update(activity_id: int, payload: ActivityUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_managed(db, user, activity_id)
    with domain_errors():
        row = update_activity(db, activity_id, payload.model_dump(exclude_unset=True))
    return _serialize_activity(db, row)


@router.delete('/{activity_id}')
def delete(activity_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_managed(db, user, activity_id)
    with domain_errors():
        delete_activity(db, activity_id)
    return {'ok': True, 'id': activity_id}


@router.get('/{activity_id}/approvals')
def approvals(activity_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_managed(db, user, activity_id)
    return {'summary': approval_summary(db, activity_id), 'approvals': list_approvals(db, activity_id)}


@router.post('/{activity_id}/approvals')
def request_single(activity_id: int, payload: ApprovalRequestCreate, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    _load_managed(db, user, activity_id)
    with domain_errors():
        row = request_approval(db, activity_id, payload.student_id, payload.parent_id)
    return _serialize_approval(row)
