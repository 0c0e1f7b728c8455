# api/cycles/queries.py
"""
SQLAlchemy query builders for verification cycle operations.
"""
from datetime import date

from sqlalchemy import select, func

from db_models.verification_cycle import VerificationCycle


def select_cycle_by_id(cycle_id: str):
    """Select a cycle by its ID."""
    return select(VerificationCycle).where(VerificationCycle.id == cycle_id)


def select_cycle_by_week(cycle_week: date):
    return select(VerificationCycle).where(VerificationCycle.cycle_week == cycle_week)


def _filter_status(stmt, status: str | None):
    if status is not None:
        stmt = stmt.where(VerificationCycle.status == status)
    return stmt


def select_cycles(status: str | None, offset: int, limit: int):
    """Select a page of cycles, newest week first."""
    stmt = select(VerificationCycle).order_by(VerificationCycle.cycle_week.desc())
    return _filter_status(stmt, status).offset(offset).limit(limit)


def count_cycles(status: str | None):
    return _filter_status(select(func.count(VerificationCycle.id)), status)
