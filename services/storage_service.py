"""
Local upload storage.

Files land under a fresh random name (``secrets.token_hex(16)`` plus the
validated extension), so concurrent uploads never collide and no client
name ever reaches the filesystem. Validation runs before and after the
write; a failed post-check deletes the file before the error is raised.
"""
import os
import secrets
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from security.patterns import final_extension
from security.security_audit_logger import RequestOrigin, SecurityAuditLogger, SuspiciousEventKind
from security.upload_gate import UploadCandidate, UploadGate, UploadVerdict, is_servable_name
from utils.exceptions import NotFoundError, UploadRejectedError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class StorageService:
    def __init__(self, upload_dir: str, gate: UploadGate, audit: SecurityAuditLogger):
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.gate = gate
        self.audit = audit

    def _reject(self, verdict: UploadVerdict, candidate: UploadCandidate, origin: Optional[RequestOrigin], stage: str):
        if origin is not None:
            self.audit.log(
                SuspiciousEventKind.UPLOAD_REJECTED,
                origin,
                reason=verdict.reason.value,
                stage=stage,
                file_name=candidate.declared_name,
                mime_type=candidate.declared_mime_type,
                size=candidate.size_bytes,
            )
        raise UploadRejectedError(verdict.message, reason=verdict.reason.value)

    def _write(self, source: BinaryIO, destination: Path) -> int:
        """Copy at most max_size + 1 bytes; anything larger fails the post-check."""
        limit = self.gate.max_size + 1
        written = 0
        with open(destination, "xb") as target:
            while written < limit:
                chunk = source.read(min(CHUNK_SIZE, limit - written))
                if not chunk:
                    break
                target.write(chunk)
                written += len(chunk)
        return written

    async def save_upload(self, upload: UploadFile, origin: Optional[RequestOrigin] = None) -> Dict[str, Any]:
        candidate = UploadCandidate(
            declared_name=upload.filename or "",
            declared_mime_type=upload.content_type,
            size_bytes=upload.size or 0,
        )

        verdict = self.gate.validate_metadata(candidate)
        if not verdict.accepted:
            self._reject(verdict, candidate, origin, "pre_write")

        stored_name = f"{secrets.token_hex(16)}{final_extension(candidate.declared_name)}"
        destination = self.upload_dir / stored_name

        try:
            await run_in_threadpool(self._write, upload.file, destination)
            verdict = self.gate.validate_stored(str(destination), candidate)
        except Exception:
            destination.unlink(missing_ok=True)
            raise

        if not verdict.accepted:
            destination.unlink(missing_ok=True)
            logger.warning(f"🚨 [UPLOAD] Post-write check failed, removed {stored_name}")
            self._reject(verdict, candidate, origin, "post_write")

        size = destination.stat().st_size
        logger.info(f"✅ [UPLOAD] Stored {candidate.declared_name} as {stored_name} ({size} bytes)")
        return {
            "original_name": candidate.declared_name,
            "stored_name": stored_name,
            "mime_type": candidate.declared_mime_type or "application/octet-stream",
            "size": size,
            "url": f"/uploads/{stored_name}",
            "uploaded_at": datetime.now(timezone.utc),
        }

    def resolve_path(self, stored_name: str) -> Path:
        """
        Absolute path of a stored file.

        Raises:
            NotFoundError: when the name escapes the upload directory or is absent.
        """
        candidate = (self.upload_dir / stored_name).resolve()
        if candidate.parent != self.upload_dir or not candidate.is_file():
            raise NotFoundError("File not found")
        return candidate

    def is_servable(self, stored_name: str) -> bool:
        return is_servable_name(stored_name)

    def delete(self, stored_name: str) -> bool:
        try:
            path = self.resolve_path(stored_name)
        except NotFoundError:
            return False
        os.remove(path)
        return True
