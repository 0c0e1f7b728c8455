# api/auth/models.py
"""
Pydantic models for authentication and user management.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


ROLE_PATTERN = "^(ADMIN|BUSINESS)$"


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserCreate(BaseModel):
    """BUSINESS users must name the business they act for."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: str = Field(default="BUSINESS", pattern=ROLE_PATTERN)
    business_id: str | None = None


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    full_name: str | None = Field(None, min_length=1, max_length=255)
    is_active: bool | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str
    business_id: str | None = None
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None
