"""
Task router: CRUD, archiving and report uploads.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from middleware.auth_dependency import (
    get_current_claims,
    get_guard_services,
    get_request_origin,
    get_storage_service,
    get_task_service,
)
from models.task import TaskCreate, TaskListResponse, TaskResponse, TaskUpdate
from security.patterns import classify
from security.security_audit_logger import RequestOrigin, SuspiciousEventKind
from services.guard_services import GuardServices
from services.storage_service import StorageService
from services.task_service import TaskService
from utils.exceptions import ClientInputError, NotFoundError
from utils.jwt_security import TokenClaims
from utils.validation import SecurityValidator, ValidationConfig

router = APIRouter(tags=["tasks"])
logger = logging.getLogger(__name__)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    include_archived: bool = Query(False),
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
):
    try:
        status = SecurityValidator.validate_choice(status, ValidationConfig.STATUSES, "Status")
        priority = SecurityValidator.validate_choice(priority, ValidationConfig.PRIORITIES, "Priority")
    except ValueError as e:
        raise ClientInputError(str(e))

    return task_service.list_tasks(
        claims,
        page=page,
        limit=limit,
        status=status,
        priority=priority,
        assignee_id=assignee_id,
        include_archived=include_archived,
    )


@router.post("", response_model=TaskResponse)
async def create_task(
    payload: TaskCreate,
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
):
    return await task_service.create_task(payload, claims)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
):
    return await task_service.update_task(task_id, payload, claims)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
):
    await task_service.delete_task(task_id, claims)
    return {"message": "Task deleted"}


@router.put("/{task_id}/archive", response_model=TaskResponse)
async def archive_task(
    task_id: str,
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
):
    return await task_service.archive_task(task_id, claims)


@router.post("/{task_id}/upload", response_model=TaskResponse)
async def upload_report(
    task_id: str,
    file: Optional[UploadFile] = File(None),
    text_content: Optional[str] = Form(None),
    claims: TokenClaims = Depends(get_current_claims),
    origin: RequestOrigin = Depends(get_request_origin),
    task_service: TaskService = Depends(get_task_service),
    storage: StorageService = Depends(get_storage_service),
    guards: GuardServices = Depends(get_guard_services),
):
    """Attach a report file or a text report; the task moves to UNDER_REVIEW."""
    text_report = None
    if text_content is not None:
        # Multipart fields bypass the body scan, so check and clean them here.
        kind = classify(text_content)
        if kind:
            guards.audit.log(SuspiciousEventKind.INJECTION_ATTEMPT, origin, field="text_content", pattern=kind)
            raise ClientInputError("Invalid input detected in field 'text_content'", {"field": "text_content"})
        limit = guards.settings.sanitize_field_limits.get("text_content")
        text_report = guards.sanitizer.sanitize_text(text_content, limit)

    if file is None and not text_report:
        raise ClientInputError("A report file or text content is required")

    task_service.get_visible_task(task_id, claims)

    stored = None
    if file is not None:
        stored = await storage.save_upload(file, origin)

    return await task_service.attach_report(task_id, claims, report_file=stored, text_report=text_report)


@router.get("/{task_id}/download")
async def download_report(
    task_id: str,
    claims: TokenClaims = Depends(get_current_claims),
    task_service: TaskService = Depends(get_task_service),
    storage: StorageService = Depends(get_storage_service),
):
    task = task_service.get_visible_task(task_id, claims)
    report = task.get("report_file")
    if not report:
        raise NotFoundError("No report file for this task")

    path = storage.resolve_path(report["stored_name"])
    return FileResponse(
        path,
        media_type=report.get("mime_type") or "application/octet-stream",
        filename=report["original_name"],
    )
