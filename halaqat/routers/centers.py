from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability, has_capability
from halaqat.core.router_guard import assert_center_match, domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.models import Center
from halaqat.schemas import CenterCreateRequest, CenterUpdateRequest
from halaqat.services.center_service import create_center, get_center, list_centers, update_center


router = APIRouter(prefix='/centers', tags=['Centers'])


def _serialize_center(row: Center) -> dict:
    return {
        'id': row.id,
        'name': row.name,
        'location': row.location,
        'phone': row.phone,
        'email': row.email,
        'description': row.description,
        'logo_url': row.logo_url,
        'is_active': row.is_active,
    }


@router.get('')
def list_all(request: Request, include_inactive: bool = False, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_CENTERS)
    return [_serialize_center(row) for row in list_centers(db, include_inactive=include_inactive)]


@router.post('')
def create(payload: CenterCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.MANAGE_CENTERS)
    with domain_errors():
        row = create_center(
            db,
            name=payload.name,
            location=payload.location,
            phone=payload.phone,
            email=payload.email,
            description=payload.description,
        )
    return _serialize_center(row)


@router.get('/{center_id}')
def detail(center_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    with domain_errors():
        row = get_center(db, center_id)
    if not has_capability(user, Capability.MANAGE_CENTERS):
        assert_center_match(user, row.id)
    return _serialize_center(row)


@router.patch('/{center_id}')
def update(center_id: int, payload: CenterUpdateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    if not has_capability(user, Capability.MANAGE_CENTERS):
        # Center admins may edit their own center's profile but not deactivate it.
        require_capability(user, Capability.MANAGE_HALAQAT)
        assert_center_match(user, center_id)
        payload.is_active = None
    with domain_errors():
        row = update_center(db, center_id, payload.model_dump(exclude_unset=True))
    return _serialize_center(row)
