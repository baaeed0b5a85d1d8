from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from halaqat.core.errors import NotFoundError, ValidationFailedError
from halaqat.core.phone import normalize_phone
from halaqat.models import Center


logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ('name', 'location', 'phone', 'email', 'description', 'logo_url', 'is_active')


def get_center(db: Session, center_id: int) -> Center:
    row = db.query(Center).filter(Center.id == int(center_id)).first()
    if not row:
        raise NotFoundError('Center not found')
    return row


def list_centers(db: Session, *, include_inactive: bool = False) -> list[Center]:
    query = db.query(Center)
    if not include_inactive:
        query = query.filter(Center.is_active.is_(True))
    return query.order_by(Center.name.asc()).all()


def create_center(
    db: Session,
    *,
    name: str,
    location: str = '',
    phone: str = '',
    email: str = '',
    description: str = '',
) -> Center:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailedError('Center name is required')
    row = Center(
        name=clean_name,
        location=(location or '').strip(),
        phone=normalize_phone(phone),
        email=(email or '').strip().lower(),
        description=description or '',
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info('center_created center_id=%s', row.id)
    return row


def update_center(db: Session, center_id: int, fields: dict) -> Center:
    row = get_center(db, center_id)
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS or value is None:
            continue
        if key == 'name' and not str(value).strip():
            raise ValidationFailedError('Center name is required')
        if key == 'phone':
            value = normalize_phone(value)
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def set_center_logo(db: Session, center_id: int, logo_url: str) -> Center:
    return update_center(db, center_id, {'logo_url': logo_url})
