# api/exports/views.py
"""
Export endpoints: admin download links, regeneration, and the public signed
download route.
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser
from core.params import CycleId, DatabaseId
from api.preparation.models import DatabaseRead
from .models import DownloadLink, ExportFormat
from . import db_manager

router = APIRouter(prefix="/admin/verification/cycles", tags=["verification exports"])
download_router = APIRouter(prefix="/verification/downloads", tags=["verification exports"])


@router.get(
    "/{cycle_id}/databases/{database_id}/download/{file_format}",
    response_model=DownloadLink,
    summary="Get a signed download link for a verification database",
)
async def get_download_link_endpoint(
    cycle_id: CycleId,
    database_id: DatabaseId,
    file_format: ExportFormat,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> DownloadLink:
    """The link is valid for one hour."""
    return await db_manager.get_signed_download_url(db, database_id, file_format, cycle_id=cycle_id)


@router.post(
    "/{cycle_id}/databases/{database_id}/regenerate",
    response_model=DatabaseRead,
    summary="Rebuild a verification database from current transactions",
)
async def regenerate_database_endpoint(
    cycle_id: CycleId,
    database_id: DatabaseId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> DatabaseRead:
    """409 once the database has been submitted or processed."""
    database = await db_manager.regenerate_database(db, cycle_id, database_id, admin_id=admin.id)
    return DatabaseRead.model_validate(database)


@download_router.get("/{token}", summary="Download a verification database file")
async def download_file_endpoint(
    token: str,
    db: AsyncSession = Depends(get_session),
) -> Response:
    content, filename, media_type = await db_manager.render_download(db, token)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
