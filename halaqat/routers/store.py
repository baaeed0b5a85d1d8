from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability, has_capability
from halaqat.core.router_guard import domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import StoreItem
from halaqat.schemas import StoreItemCreateRequest, StoreItemUpdateRequest
from halaqat.services.access_scope_service import assert_center_access
from halaqat.services.center_scope_service import get_actor_center_id, is_super_admin
from halaqat.services.store_service import create_item, get_item, list_items, update_item


router = APIRouter(prefix='/store', tags=['Store'])


def serialize_item(row: StoreItem) -> dict:
    return {
        'id': row.id,
        'center_id': row.center_id,
        'name': row.name,
        'description': row.description,
        'image_url': row.image_url,
        'points_cost': row.points_cost,
        'badges_cost': row.badges_cost,
        'item_type': row.item_type,
        'stock_quantity': row.stock_quantity,
        'is_active': row.is_active,
    }


@router.get('/items')
def items(request: Request, item_type: str | None = None, include_inactive: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    if include_inactive and not has_capability(user, Capability.MANAGE_STORE):
        include_inactive = False
    with domain_errors():
        rows = list_items(db, user, item_type=item_type, include_inactive=include_inactive)
    return [serialize_item(row) for row in rows]


@router.post('/items')
def create(payload: StoreItemCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STORE)
    if payload.global_item and not is_super_admin(user):
        raise HTTPException(status_code=403, detail='Global items are managed by super admins')
    center_id = None if payload.global_item else get_actor_center_id(user)
    if center_id is None and not payload.global_item:
        raise HTTPException(status_code=400, detail='center_id is required')
    with domain_errors():
        row = create_item(
            db,
            name=payload.name,
            center_id=center_id,
            description=payload.description,
            image_url=payload.image_url,
            points_cost=payload.points_cost,
            badges_cost=payload.badges_cost,
            item_type=payload.item_type,
            stock_quantity=payload.stock_quantity,
        )
    return serialize_item(row)


@router.patch('/items/{item_id}')
def update(item_id: int, payload: StoreItemUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_STORE)
    with domain_errors():
        row = get_item(db, item_id)
        if row.center_id is None and not is_super_admin(user):
            raise HTTPException(status_code=403, detail='Global items are managed by super admins')
        if row.center_id is not None:
            assert_center_access(user, row.center_id)
        row = update_item(db, item_id, payload.model_dump(exclude_unset=True))
    return serialize_item(row)
