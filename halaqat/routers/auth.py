from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.core.router_guard import require_auth_user, resolve_token
from halaqat.db import get_db
from halaqat.models import AuthUser
from halaqat.schemas import LoginByNameRequest
from halaqat.services.auth_service import AuthenticationError, clear_session_token, login_by_name


router = APIRouter(prefix='/auth', tags=['Auth'])


def _session_cookie_response(data: dict):
    response = JSONResponse(
        {
            'ok': True,
            'token': data['token'],
            'user_id': data['user_id'],
            'full_name': data['full_name'],
            'roles': data['roles'],
            'center_id': data['center_id'],
        }
    )
    response.set_cookie(
        key='auth_session',
        value=data['token'],
        httponly=True,
        samesite='lax',
        secure=False,
        max_age=60 * 60 * settings.auth_session_expiry_hours,
    )
    return response


@router.post('/login-by-name')
def auth_login_by_name(payload: LoginByNameRequest, db: Session = Depends(get_db)):
    try:
        data = login_by_name(db, payload.identifier, payload.password)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return _session_cookie_response(data)


@router.post('/logout')
def auth_logout(request: Request):
    clear_session_token(resolve_token(request))
    response = JSONResponse({'ok': True})
    response.delete_cookie('auth_session')
    return response


@router.get('/me')
def auth_me(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    row = db.query(AuthUser).filter(AuthUser.id == user['user_id']).first()
    if not row:
        raise HTTPException(status_code=404, detail='User not found')
    return {
        'user_id': row.id,
        'full_name': row.full_name,
        'email': row.email,
        'phone': row.phone,
        'roles': user['roles'],
        'center_id': user['center_id'],
        'is_active': row.is_active,
    }
