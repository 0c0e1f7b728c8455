# api/exports/db_manager.py
"""
Signed download links, file rendering and regeneration of verification
databases.
"""
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.audit import AuditAction, record_audit
from core.business_context import get_business_snapshot
from core.errors import DownloadLinkError, NotFoundError
from core.security import create_download_token, verify_token_type
from core.workflow import apply_transition, database_workflow
from db_base import utcnow
from db_models.verification_database import VerificationDatabase
from api.cycles.db_manager import get_cycle_by_id
from api.preparation import queries as preparation_queries
from api.preparation.db_manager import (
    get_database,
    load_records,
    snapshot_records,
    verification_window,
)
from .models import DownloadLink
from .renderers import MEDIA_TYPES, RENDERERS, export_filename, record_rows


logger = structlog.get_logger(__name__)

DOWNLOAD_PATH = "/api/verification/downloads"


async def get_signed_download_url(
    db: AsyncSession,
    database_id: str,
    file_format: str,
    cycle_id: str | None = None,
    business_id: str | None = None,
) -> DownloadLink:
    """
    Issue a one-hour signed link to a rendered export of the database.

    Raises:
        NotFoundError: If the database doesn't exist or isn't visible to the caller
        InvalidStatusError: If the database is still being prepared
    """
    database = await get_database(db, database_id, cycle_id)
    if business_id is not None and database.business_id != business_id:
        raise NotFoundError("Verification database not found", details={"database_id": database_id})
    database_workflow.require(database.status, "ready", "submitted", "processed")

    token, expires_at = create_download_token(
        database.id,
        file_format,
        timedelta(seconds=settings.DOWNLOAD_URL_EXPIRE_SECONDS),
    )
    logger.info("Download link issued", database_id=database.id, format=file_format)
    return DownloadLink(
        download_url=f"{settings.PUBLIC_BASE_URL.rstrip('/')}{DOWNLOAD_PATH}/{token}",
        expires_at=expires_at,
        filename=export_filename(database.id, file_format, utcnow()),
        format=file_format,
    )


async def render_download(db: AsyncSession, token: str) -> tuple[bytes, str, str]:
    """
    Resolve a signed token into file bytes.

    Returns:
        (content, filename, media type)
    """
    payload = verify_token_type(token, "download")
    if payload is None or payload.get("fmt") not in RENDERERS or not payload.get("sub"):
        raise DownloadLinkError()

    file_format = payload["fmt"]
    database = await db.get(VerificationDatabase, payload["sub"])
    if database is None:
        raise NotFoundError("Verification database not found")

    cycle = await get_cycle_by_id(db, database.cycle_id)
    business = await get_business_snapshot(db, database.business_id)
    records = await load_records(db, database.id)
    generated_at = utcnow()

    metadata = {
        "database_id": database.id,
        "cycle_id": cycle.id,
        "cycle_week": cycle.cycle_week.isoformat(),
        "business_id": business.id,
        "business_name": business.name,
        "status": database.status,
        "version": database.version,
        "transaction_count": database.transaction_count,
        "deadline_at": database.deadline_at.isoformat(),
        "generated_at": generated_at.isoformat(),
    }
    content = RENDERERS[file_format](record_rows(records), metadata)
    return content, export_filename(database.id, file_format, generated_at), MEDIA_TYPES[file_format]


async def regenerate_database(
    db: AsyncSession,
    cycle_id: str,
    database_id: str,
    admin_id: int | None = None,
) -> VerificationDatabase:
    """
    Rebuild a database's records from the current transactions.

    Raises:
        NotFoundError: If the database doesn't exist in the cycle
        InvalidTransitionError: If the database was already submitted or processed
    """
    database = await get_database(db, database_id, cycle_id)
    if database.status != "preparing":
        apply_transition(database, database_workflow, "preparing")

    cycle = await get_cycle_by_id(db, cycle_id)
    start, end = verification_window(cycle.cycle_week)
    result = await db.execute(
        preparation_queries.select_window_transactions(start, end, business_id=database.business_id)
    )
    await snapshot_records(db, database, list(result.scalars().all()))
    database.version += 1
    apply_transition(database, database_workflow, "ready")

    record_audit(
        db,
        action=AuditAction.DATABASE_REGENERATED,
        entity_type="verification_database",
        entity_id=database.id,
        admin_id=admin_id,
        details={"cycle_id": cycle_id, "version": database.version},
    )
    await db.commit()
    await db.refresh(database)
    logger.info("Verification database regenerated", database_id=database.id, version=database.version)
    return database
