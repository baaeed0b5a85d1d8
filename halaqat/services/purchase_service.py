from __future__ import annotations

import logging

from sqlalchemy.orm import Session, joinedload

from halaqat.core.errors import ConflictError, InsufficientBalanceError, NotFoundError, ValidationFailedError
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import ItemScope, PointSource, PurchaseRequest, PurchaseStatus, StoreItem, Student
from halaqat.services.center_scope_service import get_actor_center_id, is_super_admin
from halaqat.services.ledger_service import add_point_entry, available_badges, available_points


logger = logging.getLogger(__name__)

REFUND_REASON = 'استرداد نقاط - رفض طلب شراء'


def get_purchase(db: Session, purchase_id: int) -> PurchaseRequest:
    row = db.query(PurchaseRequest).filter(PurchaseRequest.id == int(purchase_id)).first()
    if not row:
        raise NotFoundError('Purchase request not found')
    return row


def submit_purchase(
    db: Session,
    student_id: int,
    item_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> PurchaseRequest:
    """Create a pending purchase charged at the item's current costs.

    No ledger row is written; the pending request itself reduces the available
    balance. The balance check and the insert share one transaction.
    """
    student = db.query(Student).filter(Student.id == int(student_id)).with_for_update().first()
    if not student or not student.is_active:
        raise NotFoundError('Student not found')
    item = db.query(StoreItem).filter(StoreItem.id == int(item_id)).first()
    if not item or not item.is_active:
        raise NotFoundError('Item not found')
    if item.item_type != ItemScope.STUDENT.value:
        raise ValidationFailedError('Group items are bought through a halqa vote')
    if item.center_id is not None and int(item.center_id) != int(student.center_id):
        raise NotFoundError('Item not found')
    if item.stock_quantity is not None and int(item.stock_quantity) <= 0:
        raise ConflictError('Item is out of stock')

    points = available_points(db, student.id)
    badges = available_badges(db, student.id)
    if int(item.points_cost) > points or int(item.badges_cost) > badges:
        logger.info(
            'purchase_insufficient_balance',
            extra={'student_id': student.id, 'item_id': item.id, 'points': points, 'badges': badges},
        )
        raise InsufficientBalanceError('رصيدك غير كافٍ لشراء هذا العنصر')

    row = PurchaseRequest(
        student_id=student.id,
        item_id=item.id,
        points_spent=int(item.points_cost),
        badges_spent=int(item.badges_cost),
        status=PurchaseStatus.PENDING.value,
        purchased_at=time_provider.utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info('purchase_submitted purchase_id=%s student_id=%s item_id=%s', row.id, student.id, item.id)
    return row


def _close_pending(
    db: Session,
    purchase_id: int,
    status: PurchaseStatus,
    values: dict,
) -> PurchaseRequest:
    updated = (
        db.query(PurchaseRequest)
        .filter(PurchaseRequest.id == int(purchase_id), PurchaseRequest.status == PurchaseStatus.PENDING.value)
        .update({PurchaseRequest.status: status.value, **values}, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        row = get_purchase(db, purchase_id)
        logger.warning(
            'purchase_conflict_detected',
            extra={'purchase_id': int(purchase_id), 'status': row.status, 'requested': status.value},
        )
        raise ConflictError(f'Purchase request is already {row.status}')
    db.flush()
    row = get_purchase(db, purchase_id)
    db.refresh(row)
    return row


def deliver_purchase(
    db: Session,
    purchase_id: int,
    *,
    actor: dict | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> PurchaseRequest:
    now = time_provider.utcnow()
    row = _close_pending(
        db,
        purchase_id,
        PurchaseStatus.DELIVERED,
        {
            PurchaseRequest.delivered_at: now,
            PurchaseRequest.reviewed_at: now,
            PurchaseRequest.reviewed_by: int((actor or {}).get('user_id') or 0) or None,
        },
    )
    (
        db.query(StoreItem)
        .filter(StoreItem.id == row.item_id, StoreItem.stock_quantity.is_not(None), StoreItem.stock_quantity > 0)
        .update({StoreItem.stock_quantity: StoreItem.stock_quantity - 1}, synchronize_session=False)
    )
    db.commit()
    db.refresh(row)
    logger.info('purchase_delivered purchase_id=%s', row.id)
    return row


def reject_purchase(
    db: Session,
    purchase_id: int,
    *,
    actor: dict | None = None,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> PurchaseRequest:
    """Reject a pending purchase and refund its points exactly once.

    Badges spent are not refunded.
    """
    reviewer_id = int((actor or {}).get('user_id') or 0) or None
    row = _close_pending(
        db,
        purchase_id,
        PurchaseStatus.REJECTED,
        {
            PurchaseRequest.reviewed_at: time_provider.utcnow(),
            PurchaseRequest.reviewed_by: reviewer_id,
            PurchaseRequest.notes: notes or '',
        },
    )
    if int(row.points_spent or 0) > 0:
        add_point_entry(
            db,
            student_id=row.student_id,
            points=int(row.points_spent),
            reason=REFUND_REASON,
            source=PointSource.REFUND,
            created_by=reviewer_id,
            purchase_id=row.id,
        )
    db.commit()
    db.refresh(row)
    logger.info('purchase_rejected purchase_id=%s refund=%s', row.id, row.points_spent)
    return row


def list_purchases(
    db: Session,
    user: dict | None,
    *,
    status: str | None = None,
    search: str = '',
    limit: int = 200,
) -> list[PurchaseRequest]:
    query = (
        db.query(PurchaseRequest)
        .join(Student, Student.id == PurchaseRequest.student_id)
        .options(joinedload(PurchaseRequest.item), joinedload(PurchaseRequest.student))
    )
    center_id = get_actor_center_id(user)
    if center_id:
        query = query.filter(Student.center_id == int(center_id))
    elif not is_super_admin(user):
        return []
    if status:
        query = query.filter(PurchaseRequest.status == PurchaseStatus(status).value)
    clean_search = (search or '').strip()
    if clean_search:
        query = query.join(StoreItem, StoreItem.id == PurchaseRequest.item_id).filter(
            Student.full_name.ilike(f'%{clean_search}%') | StoreItem.name.ilike(f'%{clean_search}%')
        )
    return query.order_by(PurchaseRequest.purchased_at.desc(), PurchaseRequest.id.desc()).limit(int(limit)).all()


def list_student_purchases(db: Session, student_id: int) -> list[PurchaseRequest]:
    return (
        db.query(PurchaseRequest)
        .options(joinedload(PurchaseRequest.item))
        .filter(PurchaseRequest.student_id == int(student_id))
        .order_by(PurchaseRequest.purchased_at.desc(), PurchaseRequest.id.desc())
        .all()
    )
