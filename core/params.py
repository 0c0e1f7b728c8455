# core/params.py
"""Shared request parameters: UUID path ids and page/limit pagination."""
import math
from typing import Annotated, Generic, TypeVar

from fastapi import Path, Query
from pydantic import BaseModel


UUID_V4_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-4[0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$"

CycleId = Annotated[str, Path(pattern=UUID_V4_PATTERN, description="Verification cycle id")]
DatabaseId = Annotated[str, Path(pattern=UUID_V4_PATTERN, description="Verification database id")]
InvoiceId = Annotated[str, Path(pattern=UUID_V4_PATTERN, description="Payment invoice id")]
BatchId = Annotated[str, Path(pattern=UUID_V4_PATTERN, description="Payment batch id")]
EventId = Annotated[str, Path(pattern=UUID_V4_PATTERN, description="Intrusion event id")]

PageNumber = Annotated[int, Query(ge=1, description="Page number, starting at 1")]
PageLimit = Annotated[int, Query(ge=1, le=100, description="Items per page (1-100)")]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: Pagination


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def offset_for(page: int, limit: int) -> int:
    return (page - 1) * limit
