from datetime import date
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from geopoint.db import get_db
from geopoint.errors import forbidden
from geopoint.models import EmployeeRequest, JobTitle, RequestType, UserRole
from geopoint.schemas import (
    AttachmentFailureRead,
    AttachmentRead,
    RequestCreateResponse,
    RequestRead,
    RequestUpdate,
    ReviewRequest,
)
from geopoint.security import ensure_can_view_user, get_caller_id
from geopoint.services.blob_store import BlobStore, UploadedFile, get_blob_store
from geopoint.services.directory import get_user
from geopoint.services.employee_requests import (
    add_attachment,
    attachment_too_large,
    create_request,
    delete_request,
    get_attachment_or_404,
    get_request_or_404,
    list_pending_requests,
    list_requests_for_user,
    read_attachment,
    review_request,
    update_request,
)
from geopoint.settings import get_settings

router = APIRouter(tags=["requests"])


def read_upload(upload: UploadFile) -> UploadedFile:
    file_name = upload.filename or "upload"
    max_bytes = get_settings().max_attachment_bytes
    # one byte past the cap is enough to reject; the rest stays spooled
    content = upload.file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise attachment_too_large(file_name, max_bytes)
    return UploadedFile(file_name=file_name, content=content, content_type=upload.content_type)


def _ensure_can_view_request(db: Session, *, caller_id: int, request: EmployeeRequest) -> None:
    if caller_id == request.requester_id:
        return
    ensure_can_view_user(db, caller_id=caller_id, user_id=request.requester_id)


@router.post("/api/requests", response_model=RequestCreateResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    request: Request,
    request_type: RequestType = Form(..., alias="type"),
    target_date: date = Form(...),
    justification: str | None = Form(default=None),
    attachments: list[UploadFile] = File(default=[]),
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> RequestCreateResponse:
    request.state.actor = "employee"
    result = create_request(
        db,
        requester_id=caller_id,
        request_type=request_type,
        target_date=target_date,
        justification=justification,
        attachments=[read_upload(item) for item in attachments],
        blob_store=blob_store,
    )
    request.state.request_db_id = result.request.id
    return RequestCreateResponse(
        request=RequestRead.model_validate(result.request),
        failed_attachments=[AttachmentFailureRead.model_validate(item) for item in result.failed_attachments],
    )


@router.get("/api/requests/pending", response_model=list[RequestRead])
def get_pending_requests(
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> list[RequestRead]:
    caller = get_user(db, caller_id)
    if caller is None:
        raise forbidden("Insufficient permissions.")
    if caller.job_title == JobTitle.MANAGER:
        return list_pending_requests(db, department=caller.department)
    if caller.job_title == JobTitle.HR_ANALYST or caller.role == UserRole.ADMIN:
        return list_pending_requests(db)
    raise forbidden("Only reviewers can list pending requests.")


@router.get("/api/requests/user/{user_id}", response_model=list[RequestRead])
def get_user_requests(
    user_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> list[RequestRead]:
    ensure_can_view_user(db, caller_id=caller_id, user_id=user_id)
    return list_requests_for_user(db, user_id=user_id)


@router.get("/api/requests/{request_id}", response_model=RequestRead)
def get_request_detail(
    request_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> RequestRead:
    item = get_request_or_404(db, request_id)
    _ensure_can_view_request(db, caller_id=caller_id, request=item)
    return item


@router.put("/api/requests/{request_id}/review", response_model=RequestRead)
def review(
    request_id: int,
    payload: ReviewRequest,
    request: Request,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> RequestRead:
    request.state.actor = "reviewer"
    return review_request(
        db,
        request_id=request_id,
        reviewer_id=caller_id,
        new_status=payload.new_status,
        comment=payload.comment,
    )


@router.put("/api/requests/{request_id}", response_model=RequestRead)
def edit_request(
    request_id: int,
    payload: RequestUpdate,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> RequestRead:
    return update_request(
        db,
        request_id=request_id,
        target_date=payload.target_date,
        justification=payload.justification,
        caller_id=caller_id,
    )


@router.delete("/api/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_request(
    request_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> Response:
    delete_request(db, request_id=request_id, caller_id=caller_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/requests/{request_id}/attachments",
    response_model=AttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
def upload_attachment(
    request_id: int,
    file: UploadFile = File(...),
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> AttachmentRead:
    return add_attachment(
        db,
        request_id=request_id,
        caller_id=caller_id,
        upload=read_upload(file),
        blob_store=blob_store,
    )


@router.get("/api/attachments/{attachment_id}")
def download_attachment(
    attachment_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    attachment, parent = get_attachment_or_404(db, attachment_id)
    _ensure_can_view_request(db, caller_id=caller_id, request=parent)
    content = read_attachment(attachment, blob_store=blob_store)
    return Response(
        content=content,
        media_type=attachment.content_type or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment.file_name)}"},
    )
