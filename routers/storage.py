"""
File storage router: generic uploads and static serving of stored files.
"""
import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from middleware.auth_dependency import get_current_claims, get_request_origin, get_storage_service
from models.storage import StoredFileResponse
from security.patterns import matches_path_traversal
from security.security_audit_logger import RequestOrigin
from security.upload_gate import FILENAME_RE
from services.storage_service import StorageService
from utils.exceptions import ClientInputError, PermissionDeniedError
from utils.jwt_security import TokenClaims

router = APIRouter(tags=["storage"])
files_router = APIRouter(tags=["storage"])
logger = logging.getLogger(__name__)


@router.post("/upload", response_model=StoredFileResponse)
async def upload_file(
    file: UploadFile = File(...),
    claims: TokenClaims = Depends(get_current_claims),
    origin: RequestOrigin = Depends(get_request_origin),
    storage: StorageService = Depends(get_storage_service),
):
    stored = await storage.save_upload(file, origin)
    logger.info(f"📁 [UPLOAD] {claims.sub} uploaded {stored['stored_name']}")
    return stored


@files_router.get("/uploads/{name:path}")
async def serve_upload(name: str, storage: StorageService = Depends(get_storage_service)):
    if matches_path_traversal(name) or "/" in name or "\\" in name or not FILENAME_RE.match(name):
        logger.warning(f"🚨 [UPLOAD] Rejected unsafe file name: {name[:64]!r}")
        raise ClientInputError("Invalid file name")

    if not storage.is_servable(name):
        raise PermissionDeniedError("File type not allowed")

    return FileResponse(storage.resolve_path(name))
