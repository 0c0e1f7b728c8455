# api/submissions/views.py
"""
Business portal endpoints for verification databases.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import BusinessUser
from core.params import DatabaseId, Page, PageLimit, PageNumber, build_pagination
from api.exports import db_manager as exports_db_manager
from api.exports.models import DownloadLink, ExportFormat
from api.preparation.models import DatabaseRead
from .models import RecordRead, SubmissionRequest
from . import db_manager

router = APIRouter(prefix="/business/verification/databases", tags=["business verification"])


@router.get("", response_model=Page[DatabaseRead], summary="List my verification databases")
async def list_my_databases_endpoint(
    user: BusinessUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 20,
) -> Page[DatabaseRead]:
    databases, total = await db_manager.list_business_databases(db, user.business_id, page, limit)
    return Page[DatabaseRead](
        data=[DatabaseRead.model_validate(d) for d in databases],
        pagination=build_pagination(page, limit, total),
    )


@router.get(
    "/{database_id}/records",
    response_model=list[RecordRead],
    summary="List the records of one of my verification databases",
)
async def list_my_records_endpoint(
    database_id: DatabaseId,
    user: BusinessUser,
    db: AsyncSession = Depends(get_session),
) -> list[RecordRead]:
    records = await db_manager.list_business_records(db, user.business_id, database_id)
    return [RecordRead.model_validate(r) for r in records]


@router.get(
    "/{database_id}/download/{file_format}",
    response_model=DownloadLink,
    summary="Get a signed download link for one of my verification databases",
)
async def get_my_download_link_endpoint(
    database_id: DatabaseId,
    file_format: ExportFormat,
    user: BusinessUser,
    db: AsyncSession = Depends(get_session),
) -> DownloadLink:
    return await exports_db_manager.get_signed_download_url(
        db, database_id, file_format, business_id=user.business_id
    )


@router.post(
    "/{database_id}/submit",
    response_model=DatabaseRead,
    summary="Submit verification results",
)
async def submit_verification_endpoint(
    database_id: DatabaseId,
    payload: SubmissionRequest,
    user: BusinessUser,
    db: AsyncSession = Depends(get_session),
) -> DatabaseRead:
    """
    Mark records verified or fake and submit the database. 400 with
    VERIFICATION_DEADLINE_EXPIRED after the deadline.
    """
    database = await db_manager.submit_verification(db, user.business_id, database_id, payload.records)
    return DatabaseRead.model_validate(database)
