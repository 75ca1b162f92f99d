"""
Stored file schemas.
"""
from datetime import datetime

from pydantic import BaseModel


class StoredFileResponse(BaseModel):
    original_name: str
    stored_name: str
    mime_type: str
    size: int
    url: str
    uploaded_at: datetime
