from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from sqlalchemy.orm import Session

from halaqat.core.capabilities import Capability
from halaqat.core.router_guard import assert_center_match, domain_errors, require_auth_user, require_capability
from halaqat.db import get_db
from halaqat.services.access_scope_service import assert_student_access
from halaqat.services.center_service import get_center, set_center_logo
from halaqat.services.storage_service import StorageError, store_upload
from halaqat.services.student_service import get_student, set_student_photo


router = APIRouter(prefix='/files', tags=['Uploads'])


async def _store(bucket: str, upload: UploadFile) -> dict:
    content = await upload.read()
    try:
        with domain_errors():
            return store_upload(bucket, upload.filename or '', content)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post('/center-logo/{center_id}')
async def center_logo(center_id: int, request: Request, file: UploadFile = File(...), db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.UPLOAD_FILES)
    with domain_errors():
        center = get_center(db, center_id)
    assert_center_match(user, center.id)
    stored = await _store('center-logos', file)
    row = set_center_logo(db, center.id, stored['public_url'])
    return {'center_id': row.id, 'logo_url': row.logo_url, 'path': stored['path']}


@router.post('/student-photo/{student_id}')
async def student_photo(student_id: int, request: Request, file: UploadFile = File(...), db: Session = Depends(get_db)):
    user = require_auth_user(request)
    require_capability(user, Capability.UPLOAD_FILES)
    with domain_errors():
        student = get_student(db, student_id)
        assert_student_access(db, user, student)
    stored = await _store('student-photos', file)
    row = set_student_photo(db, student.id, stored['public_url'])
    return {'student_id': row.id, 'photo_url': row.photo_url, 'path': stored['path']}
