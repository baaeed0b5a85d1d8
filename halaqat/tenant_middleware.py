from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from halaqat.core.router_guard import resolve_token, requested_center_id
from halaqat.db import SessionLocal
from halaqat.models import AuthUser, Center, Role
from halaqat.services.auth_service import validate_session_token
from halaqat.services.center_scope_service import center_context

logger = logging.getLogger(__name__)


def get_request_center_id(request: Request) -> int | None:
    value = int(getattr(request.state, 'center_id', 0) or 0)
    return value if value > 0 else None


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    """Resolve the acting center for each authenticated request.

    Regular users are pinned to the center in their session token. Super
    admins may pick a center per request through the X-Center-Id header.
    """

    def __init__(self, app, *, session_factory: sessionmaker | Callable[[], Session] | None = None):
        super().__init__(app)
        self._session_factory = session_factory or SessionLocal

    async def dispatch(self, request: Request, call_next):
        request.state.center_id = None
        session = validate_session_token(resolve_token(request))
        if not session:
            return await call_next(request)

        roles = [str(role).strip().lower() for role in session.get('roles') or []]
        center_id = int(session.get('center_id') or 0) or None
        header_center_id = requested_center_id(request)

        db: Session = self._session_factory()
        try:
            user = db.query(AuthUser).filter(AuthUser.id == int(session.get('user_id') or 0)).first()
            if not user or not user.is_active:
                logger.info('tenant_resolution_disabled_user user_id=%s', session.get('user_id'))
                return JSONResponse(status_code=403, content={'detail': 'Account disabled'})
            if Role.SUPER_ADMIN.value in roles and header_center_id:
                center = (
                    db.query(Center)
                    .filter(Center.id == header_center_id, Center.is_active.is_(True))
                    .first()
                )
                if not center:
                    return JSONResponse(status_code=404, content={'detail': 'Center not found'})
                center_id = int(center.id)
        finally:
            db.close()

        request.state.center_id = center_id
        with center_context(center_id):
            return await call_next(request)
