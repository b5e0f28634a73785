"""
Pydantic models for request/response validation.

Provides type-safe, validated data structures for the export endpoints.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storyexport.config import EXPORT_MAX_CONCURRENCY_LIMIT
from storyexport.core.models import ExportResult
from storyexport.core.project import Project, TaskRecord


# -----------------------------------------------------------------------------
# Base Models
# -----------------------------------------------------------------------------

class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
    )


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------

class ExportRequest(BaseSchema):
    """Project export request (HTTP body or first WebSocket message)."""
    project: Project = Field(..., description="Project snapshot to export")
    tasks: Optional[List[TaskRecord]] = Field(
        default=None,
        description="Generation-task records; loaded from Firestore when omitted",
    )
    concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        le=EXPORT_MAX_CONCURRENCY_LIMIT,
        description="Parallel downloads",
    )


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------

class FailureRecordSchema(BaseSchema):
    asset_type: str = Field(..., alias="assetType")
    url: str
    reason: str


class ExportResultResponse(BaseSchema):
    """Counts and failures of one export run."""
    image_count: int = Field(0, alias="imageCount")
    video_count: int = Field(0, alias="videoCount")
    audio_count: int = Field(0, alias="audioCount")
    total_count: int = Field(0, alias="totalCount")
    failures: List[FailureRecordSchema] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ExportResult) -> "ExportResultResponse":
        return cls.model_validate(result.to_dict())


# -----------------------------------------------------------------------------
# WebSocket Messages
# -----------------------------------------------------------------------------

class WSErrorMessage(BaseSchema):
    """WebSocket error message."""
    type: str = Field(default="error")
    message: str
    details: Optional[str] = None


class WSProgressMessage(BaseSchema):
    """WebSocket progress message."""
    type: str = Field(default="progress")
    phase: str
    completed: Optional[int] = None
    total: Optional[int] = None
    percent: Optional[int] = Field(default=None, ge=0, le=100)
    message: Optional[str] = None


class WSDoneMessage(BaseSchema):
    """WebSocket completion message, followed by one binary archive frame."""
    type: str = Field(default="done")
    file_name: str = Field(..., alias="fileName")
    size_bytes: int = Field(..., alias="sizeBytes")
    result: ExportResultResponse


class HealthResponse(BaseSchema):
    """Health check response."""
    status: str = "healthy"
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
