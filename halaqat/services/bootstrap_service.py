import logging

from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.models import Role, UserRole
from halaqat.services.auth_service import create_user


logger = logging.getLogger(__name__)


def _seed_super_admin_if_needed(db: Session) -> dict:
    existing = db.query(UserRole).filter(UserRole.role == Role.SUPER_ADMIN.value).first()
    if existing:
        return {'seeded': False, 'reason': 'super_admin_exists'}
    name = (settings.bootstrap_admin_name or '').strip()
    password = settings.bootstrap_admin_password or ''
    if not name or not password:
        logger.warning('super_admin_seed_skipped missing_bootstrap_credentials')
        return {'seeded': False, 'reason': 'no_credentials'}
    user = create_user(
        db,
        full_name=name,
        password=password,
        role=Role.SUPER_ADMIN.value,
        email=settings.bootstrap_admin_email or None,
    )
    logger.warning('Default super admin created - change the password after setup (user_id=%s)', user.id)
    return {'seeded': True, 'user_id': user.id}


def run_bootstrap(db: Session) -> dict:
    result = _seed_super_admin_if_needed(db)
    return {'ran': bool(result.get('seeded')), 'super_admin': result}
