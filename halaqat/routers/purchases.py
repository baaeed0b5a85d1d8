from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import PurchaseRequest
from halaqat.schemas import PurchaseCreateRequest, PurchaseReviewRequest
from halaqat.services.access_scope_service import assert_center_access, get_student_for_user
from halaqat.services.ledger_service import student_balance
from halaqat.services.purchase_service import (
    deliver_purchase,
    get_purchase,
    list_purchases,
    list_student_purchases,
    reject_purchase,
    submit_purchase,
)


router = APIRouter(prefix='/purchases', tags=['Purchases'])


def _serialize_purchase(row: PurchaseRequest) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'student_name': row.student.full_name if row.student else None,
        'item_id': row.item_id,
        'item_name': row.item.name if row.item else None,
        'points_spent': row.points_spent,
        'badges_spent': row.badges_spent,
        'status': row.status,
        'notes': row.notes,
        'purchased_at': row.purchased_at.isoformat() if row.purchased_at else None,
        'reviewed_at': row.reviewed_at.isoformat() if row.reviewed_at else None,
        'delivered_at': row.delivered_at.isoformat() if row.delivered_at else None,
    }


@router.post('')
def create(payload: PurchaseCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.PURCHASE_ITEMS)
    with domain_errors():
        student = get_student_for_user(db, user)
        row = submit_purchase(db, student.id, payload.item_id)
    return {'purchase': _serialize_purchase(row), 'balance': student_balance(db, student.id)}


@router.get('/me')
def mine(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        student = get_student_for_user(db, user)
    return [_serialize_purchase(row) for row in list_student_purchases(db, student.id)]


@router.get('')
def list_all(
    request: Request,
    status: str | None = None,
    search: str = '',
    limit: int = 200,
    db: Session = Depends(get_db),
):
    user = require_auth_user(request)
    require_capability(user, Capability.REVIEW_PURCHASES)
    with domain_errors():
        rows = list_purchases(db, user, status=status, search=search, limit=max(1, min(limit, 500)))
    return [_serialize_purchase(row) for row in rows]


def _load_for_review(db: Session, user: dict, purchase_id: int) -> PurchaseRequest:
    row = get_purchase(db, purchase_id)
    assert_center_access(user, row.student.center_id)
    return row


@router.post('/{purchase_id}/deliver')
def deliver(purchase_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.REVIEW_PURCHASES)
    with domain_errors():
        _load_for_review(db, user, purchase_id)
        row = deliver_purchase(db, purchase_id, actor=user)
    return _serialize_purchase(row)


@router.post('/{purchase_id}/reject')
def reject(purchase_id: int, payload: PurchaseReviewRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.REVIEW_PURCHASES)
    with domain_errors():
        _load_for_review(db, user, purchase_id)
        row = reject_purchase(db, purchase_id, actor=user, notes=payload.notes)
    return _serialize_purchase(row)
