import sys

from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text

from halaqat.config import settings
from halaqat.db import SessionLocal, engine
from halaqat.models import Center, Role, UserRole
from halaqat.services.auth_service import _encode_jwt, clear_session_token, validate_session_token
from halaqat.services.storage_service import upload_root


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity_and_write():
    with engine.begin() as conn:
        conn.execute(text('SELECT 1'))
        conn.execute(text('CREATE TABLE IF NOT EXISTS _healthcheck_probe (id INTEGER PRIMARY KEY, note TEXT)'))
        conn.execute(text("INSERT INTO _healthcheck_probe (note) VALUES ('probe')"))
        conn.execute(text("DELETE FROM _healthcheck_probe WHERE note='probe'"))
        conn.execute(text('DROP TABLE IF EXISTS _healthcheck_probe'))
    return 'connect + write ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_required_env():
    required = {
        'DATABASE_URL': settings.database_url,
        'APP_BASE_URL': settings.app_base_url,
        'AUTH_SECRET': settings.auth_secret,
    }
    missing = [key for key, value in required.items() if not str(value).strip()]
    if missing:
        raise RuntimeError(f'Missing env vars: {", ".join(missing)}')
    if settings.auth_secret == 'change-me' and settings.app_env != 'local':
        raise RuntimeError('AUTH_SECRET still has the default value')
    return 'all required vars present'


def check_super_admin_present():
    db = SessionLocal()
    try:
        admin = db.query(UserRole).filter(UserRole.role == Role.SUPER_ADMIN.value).first()
        if not admin:
            raise RuntimeError('No super admin account (set BOOTSTRAP_ADMIN_* and run bootstrap.py)')
        centers = db.query(Center).filter(Center.is_active.is_(True)).count()
        return f'active_centers={centers}'
    finally:
        db.close()


def check_session_token_round_trip():
    token = _encode_jwt({'sub': 0, 'name': 'healthcheck', 'roles': [], 'center_id': 0})
    session = validate_session_token(token)
    if not session or session.get('name') != 'healthcheck':
        raise RuntimeError('Signed token did not validate')
    clear_session_token(token)
    if validate_session_token(token):
        raise RuntimeError('Revoked token still validates')
    if validate_session_token(token[:-2] + 'xx'):
        raise RuntimeError('Tampered token validated')
    return 'sign/validate/revoke ok'


def check_upload_dir_writable():
    root = upload_root()
    root.mkdir(parents=True, exist_ok=True)
    probe = root / '.healthcheck'
    probe.write_bytes(b'ok')
    probe.unlink()
    return str(root)


def main():
    checks = [
        ('Database connectivity and write access', check_db_connectivity_and_write),
        ('Alembic migration status at head', check_alembic_head),
        ('Required environment variables present', check_required_env),
        ('Super admin account seeded', check_super_admin_present),
        ('Session token signing and revocation working', check_session_token_round_trip),
        ('Upload directory writable', check_upload_dir_writable),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()
