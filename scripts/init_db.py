from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from halaqat.core.time_provider import default_time_provider
from halaqat.db import Base, SessionLocal, engine
from halaqat.models import Center, ItemScope, Role
from halaqat.services.account_service import create_student_with_parent
from halaqat.services.auth_service import create_user
from halaqat.services.badge_service import create_badge_setting
from halaqat.services.center_service import create_center
from halaqat.services.halqa_service import create_halqa
from halaqat.services.holiday_service import create_holiday
from halaqat.services.store_service import create_item


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(Center).first():
        center = create_center(db, name='مركز النور', location='الرياض', phone='0500000000')
        admin = create_user(
            db,
            full_name='مدير المركز',
            password='admin123',
            role=Role.CENTER_ADMIN.value,
            center_id=center.id,
        )
        teacher = create_user(
            db,
            full_name='الأستاذ أحمد',
            password='teacher123',
            role=Role.TEACHER.value,
            center_id=center.id,
        )
        halqa = create_halqa(db, center_id=center.id, name='حلقة الفجر', teacher_id=teacher.id, max_students=15)

        families = [
            ('عبدالله سالم', '0501110001', 'سالم محمد', '0502220001'),
            ('يوسف خالد', '', 'خالد علي', '0502220002'),
            ('عمر فهد', '0501110003', 'فهد ناصر', '0502220003'),
        ]
        for student_name, student_phone, parent_name, parent_phone in families:
            create_student_with_parent(
                db,
                student_name=student_name,
                student_phone=student_phone,
                parent_name=parent_name,
                parent_phone=parent_phone,
                center_id=center.id,
                halqa_id=halqa.id,
            )

        create_badge_setting(
            db,
            name='نجم الحفظ',
            center_id=None,
            points_value=20,
            requirements_type='memorization_pages',
            requirements_value={'pages': 5},
        )
        create_item(db, name='مصحف', center_id=center.id, points_cost=50)
        create_item(db, name='رحلة للحلقة', center_id=center.id, points_cost=0, item_type=ItemScope.HALQA.value)

        today = default_time_provider.today()
        create_holiday(
            db,
            center_id=center.id,
            name='إجازة نهاية الأسبوع الطويلة',
            start_date=today + timedelta(days=7),
            end_date=today + timedelta(days=9),
            halqa_ids=[halqa.id],
            created_by=admin.id,
        )
finally:
    db.close()

print('DB initialized with sample data.')
