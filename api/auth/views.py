# api/auth/views.py
"""
Authentication and user management endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser, CurrentUser
from core.params import Page, PageLimit, PageNumber, build_pagination
from core.security import verify_token_type
from .models import LoginRequest, Token, TokenRefresh, UserCreate, UserResponse, UserUpdate
from . import db_manager


router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=Token, summary="Login and get tokens")
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
) -> Token:
    """OAuth2 password flow; the `username` field carries the email."""
    return await db_manager.authenticate(db, form_data.username, form_data.password)


@router.post("/login/json", response_model=Token, summary="Login with JSON body")
async def login_json(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> Token:
    return await db_manager.authenticate(db, credentials.email, credentials.password)


@router.post("/refresh", response_model=Token, summary="Refresh access token")
async def refresh_token(
    request: TokenRefresh,
    db: AsyncSession = Depends(get_session),
) -> Token:
    payload = verify_token_type(request.refresh_token, "refresh")
    if payload is None or payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    user = await db_manager.get_active_user(db, int(payload["sub"]))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return db_manager.issue_tokens(user)


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


# --- Admin endpoints for user management ---

@router.get("/users", response_model=Page[UserResponse], summary="List users (admin)")
async def list_users(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 50,
) -> Page[UserResponse]:
    users, total = await db_manager.list_users(db, page, limit)
    return Page[UserResponse](
        data=[UserResponse.model_validate(u) for u in users],
        pagination=build_pagination(page, limit, total),
    )


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user (admin)",
)
async def create_user(
    user_data: UserCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await db_manager.create_user(db, user_data)
    return UserResponse.model_validate(user)


@router.get("/users/{user_id}", response_model=UserResponse, summary="Get user by ID (admin)")
async def get_user(
    user_id: int,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await db_manager.get_user(db, user_id)
    return UserResponse.model_validate(user)


@router.put("/users/{user_id}", response_model=UserResponse, summary="Update user (admin)")
async def update_user(
    user_id: int,
    updates: UserUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await db_manager.update_user(db, user_id, updates)
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=UserResponse, summary="Deactivate user (admin)")
async def deactivate_user(
    user_id: int,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await db_manager.deactivate_user(db, user_id, admin.id)
    return UserResponse.model_validate(user)
