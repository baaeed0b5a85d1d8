from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from halaqat.core.errors import NotFoundError, ValidationFailedError
from halaqat.models import ItemScope, StoreItem
from halaqat.services.center_scope_service import apply_center_scope


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('name', 'description', 'image_url', 'points_cost', 'badges_cost', 'item_type', 'stock_quantity', 'is_active')


def _validate_item_fields(fields: dict) -> dict:
    clean = dict(fields)
    if 'name' in clean and not str(clean['name'] or '').strip():
        raise ValidationFailedError('Item name is required')
    for key in ('points_cost', 'badges_cost'):
        if key in clean and clean[key] is not None and int(clean[key]) < 0:
            raise ValidationFailedError(f'{key} must not be negative')
    if clean.get('stock_quantity') is not None and int(clean['stock_quantity']) < 0:
        raise ValidationFailedError('stock_quantity must not be negative')
    if 'item_type' in clean and clean['item_type'] is not None:
        try:
            clean['item_type'] = ItemScope(str(clean['item_type'])).value
        except ValueError as exc:
            raise ValidationFailedError(f"Unknown item type: {clean['item_type']}") from exc
    return clean


def get_item(db: Session, item_id: int) -> StoreItem:
    row = db.query(StoreItem).filter(StoreItem.id == int(item_id)).first()
    if not row:
        raise NotFoundError('Item not found')
    return row


def create_item(
    db: Session,
    *,
    name: str,
    center_id: int | None,
    description: str = '',
    image_url: str = '',
    points_cost: int = 0,
    badges_cost: int = 0,
    item_type: str = ItemScope.STUDENT.value,
    stock_quantity: int | None = None,
) -> StoreItem:
    fields = _validate_item_fields(
        {
            'name': name,
            'points_cost': points_cost,
            'badges_cost': badges_cost,
            'item_type': item_type,
            'stock_quantity': stock_quantity,
        }
    )
    row = StoreItem(
        center_id=center_id,
        name=str(fields['name']).strip(),
        description=description or '',
        image_url=image_url or '',
        points_cost=int(fields['points_cost'] or 0),
        badges_cost=int(fields['badges_cost'] or 0),
        item_type=fields['item_type'],
        stock_quantity=fields['stock_quantity'],
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info('store_item_created item_id=%s center_id=%s item_type=%s', row.id, row.center_id, row.item_type)
    return row


def update_item(db: Session, item_id: int, fields: dict) -> StoreItem:
    row = get_item(db, item_id)
    clean = _validate_item_fields({key: value for key, value in fields.items() if key in _EDITABLE_FIELDS})
    for key, value in clean.items():
        if value is None and key != 'stock_quantity':
            continue
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def list_items(
    db: Session,
    user: dict | None,
    *,
    item_type: str | None = None,
    include_inactive: bool = False,
) -> list[StoreItem]:
    query = apply_center_scope(db.query(StoreItem), user)
    if item_type:
        query = query.filter(StoreItem.item_type == ItemScope(item_type).value)
    if not include_inactive:
        query = query.filter(StoreItem.is_active.is_(True))
    return query.order_by(StoreItem.points_cost.asc(), StoreItem.name.asc()).all()
