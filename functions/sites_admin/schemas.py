"""
Pydantic schemas for the storage admin API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class UsageReportResponse(BaseModel):
    prefix: str
    total_bytes: int = Field(..., ge=0)
    total_mb: float
    quota_mb: int
    percentage: float = Field(..., ge=0, le=100)


class OrphanListResponse(BaseModel):
    user_id: str
    orphans: list[str]


class CleanupRequest(BaseModel):
    dry_run: bool = False
    policy: Optional[Literal["continue", "abort"]] = None


class CleanupResponse(BaseModel):
    user_id: str
    deleted_count: int
    deleted_paths: list[str]
    failed_paths: list[str]
    scanned_count: int
    aborted: bool
    dry_run: bool
    usage: Optional[UsageReportResponse] = None


class ImageRecordResponse(BaseModel):
    record_id: str
    user_id: str
    path: str
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    created_at: float


class ListAssetsResponse(BaseModel):
    user_id: str
    assets: list[ImageRecordResponse]


class StatusResponse(BaseModel):
    status: Literal["ok"]
