"""
HTTP routes for the storage admin API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from sites_admin.assets import delete_asset, upload_asset
from sites_admin.config import Settings, get_settings
from sites_admin.db import DbClient
from sites_admin.dependencies import get_db_client, get_storage_client
from sites_admin.reconcile import DeletePolicy, delete_orphans, find_orphans, user_prefix
from sites_admin.schemas import (
    CleanupRequest,
    CleanupResponse,
    ImageRecordResponse,
    ListAssetsResponse,
    OrphanListResponse,
    StatusResponse,
    UsageReportResponse,
)
from sites_admin.storage import DeleteFailed, StorageClient, SubtreeUnavailable
from sites_admin.usage import calculate_storage_usage

logger = logging.getLogger(__name__)

router = APIRouter()


def _usage_response(storage: StorageClient, prefix: str) -> UsageReportResponse:
    try:
        report = calculate_storage_usage(storage, prefix)
    except SubtreeUnavailable as exc:
        logger.error("Error calculating storage usage for %s: %s", exc.path, exc.reason)
        raise HTTPException(
            status_code=502, detail="Failed to calculate storage usage"
        ) from exc
    return UsageReportResponse(prefix=prefix, **report.as_dict())


def _user_prefix_or_400(user_id: str, settings: Settings) -> str:
    try:
        return user_prefix(user_id, settings.users_root)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/storage/usage", response_model=UsageReportResponse)
def storage_usage(
    prefix: str = Query("", description="Prefix to account; empty for the whole bucket"),
    storage: StorageClient = Depends(get_storage_client),
):
    return _usage_response(storage, prefix.strip("/"))


@router.get("/users/{user_id}/storage/usage", response_model=UsageReportResponse)
def user_storage_usage(
    user_id: str,
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
):
    return _usage_response(storage, _user_prefix_or_400(user_id, settings))


@router.get("/users/{user_id}/orphans", response_model=OrphanListResponse)
def list_orphans(
    user_id: str,
    storage: StorageClient = Depends(get_storage_client),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    _user_prefix_or_400(user_id, settings)
    try:
        orphans = find_orphans(storage, db, user_id, users_root=settings.users_root)
    except SubtreeUnavailable as exc:
        raise HTTPException(status_code=502, detail="Failed to list user storage") from exc
    return OrphanListResponse(user_id=user_id, orphans=orphans)


@router.post("/users/{user_id}/orphans/cleanup", response_model=CleanupResponse)
def cleanup_orphans(
    user_id: str,
    payload: CleanupRequest | None = None,
    storage: StorageClient = Depends(get_storage_client),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """
    Delete the user's orphaned images, then recalculate bucket usage.
    """
    payload = payload or CleanupRequest()
    _user_prefix_or_400(user_id, settings)
    policy = DeletePolicy(payload.policy or settings.orphan_delete_policy)
    try:
        report = delete_orphans(
            storage,
            db,
            user_id,
            policy=policy,
            dry_run=payload.dry_run,
            users_root=settings.users_root,
        )
    except SubtreeUnavailable as exc:
        logger.error("Error deleting orphaned images for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=502, detail="Failed to delete orphaned images"
        ) from exc

    usage = None
    try:
        usage = UsageReportResponse(
            prefix="", **calculate_storage_usage(storage, "").as_dict()
        )
    except SubtreeUnavailable as exc:
        logger.warning("Could not refresh storage usage after cleanup: %s", exc)
    return CleanupResponse(user_id=user_id, usage=usage, **report.as_dict())


@router.get("/users/{user_id}/assets", response_model=ListAssetsResponse)
def list_assets(user_id: str, db: DbClient = Depends(get_db_client)):
    records = db.list_image_records(user_id)
    return ListAssetsResponse(
        user_id=user_id,
        assets=[ImageRecordResponse(**record.as_dict()) for record in records],
    )


@router.post(
    "/users/{user_id}/assets", response_model=ImageRecordResponse, status_code=201
)
async def create_asset(
    user_id: str,
    file: UploadFile = File(...),
    folder: str = Form(...),
    storage: StorageClient = Depends(get_storage_client),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    data = await file.read()
    try:
        record = upload_asset(
            storage,
            db,
            user_id,
            folder,
            file.filename or "",
            data,
            file.content_type,
            max_bytes=settings.max_upload_bytes,
            users_root=settings.users_root,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ImageRecordResponse(**record.as_dict())


@router.delete("/users/{user_id}/assets", response_model=StatusResponse)
def remove_asset(
    user_id: str,
    path: str = Query(..., description="Full storage path of the asset"),
    storage: StorageClient = Depends(get_storage_client),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    try:
        delete_asset(storage, db, user_id, path, users_root=settings.users_root)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DeleteFailed as exc:
        logger.error("Error deleting asset %s: %s", exc.path, exc.reason)
        raise HTTPException(status_code=502, detail="Failed to delete asset") from exc
    return StatusResponse(status="ok")
