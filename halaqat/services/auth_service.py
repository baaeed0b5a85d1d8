from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import threading
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from halaqat.config import settings
from halaqat.core.errors import ConflictError, NotFoundError, ValidationFailedError
from halaqat.core.phone import normalize_phone
from halaqat.core.time_provider import TimeProvider, default_time_provider
from halaqat.models import AuthUser, Center, Role, UserRole


_REVOKED_TOKENS: set[str] = set()
_TOKENS_LOCK = threading.RLock()
logger = logging.getLogger(__name__)


class AuthenticationError(ValueError):
    """Raised when credentials do not match an active account."""


def _hash_password(password: str) -> str:
    if len(password or '') < settings.auth_min_password_length:
        raise ValidationFailedError(f'Password must be at least {settings.auth_min_password_length} characters')
    salt = secrets.token_hex(16)
    iterations = 120000
    derived = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt.encode('utf-8'), iterations)
    return f'pbkdf2_sha256${iterations}${salt}${derived.hex()}'


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, iter_raw, salt, digest_hex = password_hash.split('$', 3)
        if algo != 'pbkdf2_sha256':
            return False
        iterations = int(iter_raw)
        derived = hashlib.pbkdf2_hmac('sha256', (password or '').encode('utf-8'), salt.encode('utf-8'), iterations).hex()
        return hmac.compare_digest(derived, digest_hex)
    except ValueError:
        return False


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':'), ensure_ascii=False).encode('utf-8'))
    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    signature_part = _b64url_encode(signature)
    return f'{header_part}.{payload_part}.{signature_part}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
    except ValueError:
        return None

    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    expected_signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    try:
        provided_signature = _b64url_decode(signature_part)
    except ValueError:
        return None
    if not hmac.compare_digest(provided_signature, expected_signature):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def list_user_roles(db: Session, user_id: int) -> list[str]:
    rows = db.query(UserRole.role).filter(UserRole.user_id == int(user_id)).order_by(UserRole.id.asc()).all()
    roles: list[str] = []
    for (role,) in rows:
        if role not in roles:
            roles.append(role)
    return roles


def issue_session_token(
    db: Session,
    user: AuthUser,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    now = time_provider.now()
    expires_at = now + timedelta(hours=settings.auth_session_expiry_hours)
    roles = list_user_roles(db, user.id)
    token = _encode_jwt(
        {
            'sub': user.id,
            'name': user.full_name,
            'roles': roles,
            'center_id': int(user.center_id or 0),
            'iat': int(now.timestamp()),
            'exp': int(expires_at.timestamp()),
        }
    )
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.discard(token)
    return {
        'token': token,
        'user_id': user.id,
        'full_name': user.full_name,
        'roles': roles,
        'center_id': user.center_id,
        'expires_at': expires_at.isoformat(),
    }


def validate_session_token(
    token: str | None,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict | None:
    if not token:
        return None
    with _TOKENS_LOCK:
        if token in _REVOKED_TOKENS:
            return None

    payload = _decode_jwt(token)
    if not payload:
        return None

    user_id = payload.get('sub')
    roles = payload.get('roles')
    if user_id is None or not isinstance(roles, list):
        return None
    expires_at = int(payload.get('exp') or 0)
    if expires_at and expires_at < int(time_provider.now().timestamp()):
        return None

    return {
        'user_id': user_id,
        'name': payload.get('name') or '',
        'roles': roles,
        'center_id': int(payload.get('center_id') or 0) or None,
        'expires_at': expires_at or None,
    }


def clear_session_token(token: str | None) -> None:
    if not token:
        return
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.add(token)


def _find_login_candidates(db: Session, identifier: str) -> list[AuthUser]:
    clean = (identifier or '').strip()
    if not clean:
        return []
    if '@' in clean:
        row = db.query(AuthUser).filter(func.lower(AuthUser.email) == clean.lower()).first()
        return [row] if row else []
    return (
        db.query(AuthUser)
        .filter((AuthUser.full_name == clean) | (AuthUser.username == clean))
        .order_by(AuthUser.id.asc())
        .all()
    )


def login_by_name(
    db: Session,
    identifier: str,
    password: str,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    """Sign in with an email address or a trimmed full name plus password.

    Several accounts can share a display name; the first one whose password
    matches wins.
    """
    candidates = _find_login_candidates(db, identifier)
    if not candidates:
        logger.info('auth_login_unknown_identifier')
        raise AuthenticationError('Invalid credentials')
    for user in candidates:
        if not user.password_hash or not _verify_password(password, user.password_hash):
            continue
        if not user.is_active:
            logger.warning('auth_login_disabled_account user_id=%s', user.id)
            raise AuthenticationError('Account is disabled')
        user.last_login_at = time_provider.utcnow()
        db.commit()
        db.refresh(user)
        logger.info('auth_login_success user_id=%s', user.id)
        return issue_session_token(db, user, time_provider=time_provider)
    logger.info('auth_login_bad_password candidates=%s', len(candidates))
    raise AuthenticationError('Invalid credentials')


def _parse_role(role: str) -> Role:
    try:
        return Role(str(role or '').strip().lower())
    except ValueError as exc:
        raise ValidationFailedError(f'Unknown role: {role}') from exc


def create_user(
    db: Session,
    *,
    full_name: str,
    password: str,
    role: str,
    center_id: int | None = None,
    email: str | None = None,
    username: str | None = None,
    phone: str = '',
    commit: bool = True,
) -> AuthUser:
    clean_name = (full_name or '').strip()
    if not clean_name:
        raise ValidationFailedError('full_name is required')
    parsed_role = _parse_role(role)
    if parsed_role == Role.SUPER_ADMIN:
        center_id = None
    elif not int(center_id or 0):
        raise ValidationFailedError('center_id is required for this role')
    else:
        center = db.query(Center).filter(Center.id == int(center_id)).first()
        if not center:
            raise NotFoundError('Center not found')

    clean_email = (email or '').strip().lower() or None
    if clean_email and db.query(AuthUser).filter(func.lower(AuthUser.email) == clean_email).first():
        raise ConflictError('Email already registered')

    user = AuthUser(
        full_name=clean_name,
        username=(username or '').strip() or clean_name,
        email=clean_email,
        phone=normalize_phone(phone),
        password_hash=_hash_password(password),
        center_id=int(center_id) if center_id else None,
        is_active=True,
    )
    db.add(user)
    db.flush()
    db.add(UserRole(user_id=user.id, role=parsed_role.value, center_id=user.center_id))
    if commit:
        db.commit()
        db.refresh(user)
    else:
        db.flush()
    logger.info('auth_user_created user_id=%s role=%s center_id=%s', user.id, parsed_role.value, user.center_id)
    return user


def grant_role(db: Session, user_id: int, role: str) -> UserRole:
    user = db.query(AuthUser).filter(AuthUser.id == int(user_id)).first()
    if not user:
        raise NotFoundError('User not found')
    parsed_role = _parse_role(role)
    center_id = None if parsed_role == Role.SUPER_ADMIN else user.center_id
    existing = (
        db.query(UserRole)
        .filter(UserRole.user_id == user.id, UserRole.role == parsed_role.value)
        .first()
    )
    if existing:
        return existing
    row = UserRole(user_id=user.id, role=parsed_role.value, center_id=center_id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def set_user_active(db: Session, user_id: int, active: bool) -> AuthUser:
    user = db.query(AuthUser).filter(AuthUser.id == int(user_id)).first()
    if not user:
        raise NotFoundError('User not found')
    user.is_active = bool(active)
    db.commit()
    db.refresh(user)
    logger.info('auth_user_status_changed user_id=%s active=%s', user.id, user.is_active)
    return user
