import logging
import sys

from halaqat.db import Base, SessionLocal, engine
from halaqat.services.bootstrap_service import run_bootstrap


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('halaqat.bootstrap')


def main() -> int:
    """Create tables and seed the first super admin from BOOTSTRAP_ADMIN_* settings."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        result = run_bootstrap(db)
    finally:
        db.close()

    super_admin = result['super_admin']
    if result['ran']:
        logger.info('bootstrap_super_admin_seeded user_id=%s', super_admin.get('user_id'))
        return 0
    logger.info('bootstrap_skipped reason=%s', super_admin.get('reason'))
    # A fresh install without credentials cannot sign anyone in.
    return 1 if super_admin.get('reason') == 'no_credentials' else 0


if __name__ == '__main__':
    sys.exit(main())
