# api/exports/models.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


ExportFormat = Literal["csv", "excel", "json"]


class DownloadLink(BaseModel):
    download_url: str
    expires_at: datetime
    filename: str
    format: ExportFormat
