import logging
import time

from sqlalchemy import create_engine, event, or_
from sqlalchemy.orm import Session, declarative_base, sessionmaker, with_loader_criteria

from halaqat.config import settings
from halaqat.request_context import current_endpoint


_connect_args = {'check_same_thread': False} if settings.database_url.startswith('sqlite') else {}
engine = create_engine(settings.database_url, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_SLOW_QUERY_MS = settings.db_slow_query_ms
_slow_logger = logging.getLogger('halaqat.db.slow_query')


@event.listens_for(engine, 'before_cursor_execute')
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


@event.listens_for(engine, 'after_cursor_execute')
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, '_query_start_time', None)
    if start is None:
        return
    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= _SLOW_QUERY_MS:
        endpoint = current_endpoint.get()
        sql_text = (statement or '').replace('\n', ' ').strip()
        _slow_logger.warning(
            'slow_query duration_ms=%.2f endpoint=%s sql=%s',
            duration_ms,
            endpoint,
            sql_text,
        )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@event.listens_for(Session, 'do_orm_execute')
def _apply_center_tenant_filter(execute_state):
    if not execute_state.is_select:
        return

    from halaqat.models import Activity, BadgeSetting, DailyReport, Halqa, Holiday, Parent, StoreItem, Student
    from halaqat.services.center_scope_service import get_current_center_id

    center_id = int(get_current_center_id() or 0)
    if center_id <= 0:
        return

    for model in (Halqa, Student, Parent, DailyReport, Activity, Holiday):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                model,
                lambda cls: cls.center_id == center_id,
                include_aliases=True,
            )
        )
    # Catalog items and badge definitions may be global (no center).
    for model in (StoreItem, BadgeSetting):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                model,
                lambda cls: or_(cls.center_id == center_id, cls.center_id.is_(None)),
                include_aliases=True,
            )
        )
