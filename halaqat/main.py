from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles

from halaqat.config import settings
from halaqat.db import Base, SessionLocal, engine
from halaqat.routers import (
    activities,
    auth,
    badges,
    centers,
    functions,
    groups,
    holidays,
    parents,
    points,
    purchases,
    reports,
    store,
    students,
    uploads,
    votes,
)
from halaqat.route_logging import EndpointNameRoute
from halaqat.services.bootstrap_service import run_bootstrap
from halaqat.services.storage_service import PUBLIC_PREFIX, upload_root
from halaqat.tenant_middleware import TenantResolutionMiddleware, get_request_center_id

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        run_bootstrap(db)
    finally:
        db.close()
    yield


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute
app.add_exception_handler(RequestValidationError, functions.request_validation_handler)

_upload_dir = upload_root()
_upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(PUBLIC_PREFIX, StaticFiles(directory=str(_upload_dir)), name='uploads-static')
app.add_middleware(TenantResolutionMiddleware)


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('halaqat.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f center_id=%s',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
            get_request_center_id(request),
        )
    return response

app.include_router(auth.router)
app.include_router(centers.router)
app.include_router(groups.router)
app.include_router(students.router)
app.include_router(parents.router)
app.include_router(points.router)
app.include_router(badges.router)
app.include_router(store.router)
app.include_router(purchases.router)
app.include_router(votes.router)
app.include_router(reports.router)
app.include_router(activities.router)
app.include_router(holidays.router)
app.include_router(uploads.router)
app.include_router(functions.router)


@app.get('/')
def health():
    return {'app': settings.app_name, 'status': 'ok'}


@app.get('/health')
def healthcheck():
    return {'status': 'ok'}
