"""
Task model schemas.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.storage import StoredFileResponse
from models.user import Pagination
from utils.validation import EnhancedBaseModel, SecurityValidator, ValidationConfig


class TaskCreate(EnhancedBaseModel):
    title: str
    description: Optional[str] = ""
    priority: Optional[str] = "MEDIUM"
    deadline: Optional[datetime] = None
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = Field(None, max_length=ValidationConfig.MAX_NAME_LENGTH * 3)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return SecurityValidator.validate_task_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        return SecurityValidator.validate_task_description(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return SecurityValidator.validate_choice(v, ValidationConfig.PRIORITIES, "Priority") or "MEDIUM"

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v):
        return SecurityValidator.validate_deadline(v, allow_past=False)


class TaskUpdate(EnhancedBaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    deadline: Optional[datetime] = None
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = Field(None, max_length=ValidationConfig.MAX_NAME_LENGTH * 3)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return SecurityValidator.validate_task_title(v) if v is not None else v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        return SecurityValidator.validate_task_description(v) if v is not None else v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return SecurityValidator.validate_choice(v, ValidationConfig.PRIORITIES, "Priority")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return SecurityValidator.validate_choice(v, ValidationConfig.STATUSES, "Status")

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v):
        return SecurityValidator.validate_deadline(v, allow_past=True)


class TaskResponse(BaseModel):
    id: str
    title: str
    description: str = ""
    priority: str
    status: str
    deadline: Optional[datetime] = None
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    created_by: str
    updated_by: Optional[str] = None
    archived: bool = False
    report_file: Optional[StoredFileResponse] = None
    text_report: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    pagination: Pagination
