# api/auth/db_manager.py
"""
User lookup, credential checks and user administration.
"""
import structlog
from fastapi import HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, ValidationFailedError
from core.params import offset_for
from core.security import create_access_token, create_refresh_token, get_password_hash, verify_password
from db_base import utcnow
from db_models.business import Business
from db_models.user import User, UserRole
from .models import Token, UserCreate, UserUpdate


logger = structlog.get_logger(__name__)


def issue_tokens(user: User) -> Token:
    claims = {"sub": str(user.id), "role": user.role}
    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


async def authenticate(db: AsyncSession, email: str, password: str) -> Token:
    """
    Check credentials and stamp `last_login_at`.

    Raises:
        HTTPException: 401 for unknown email, wrong password or a disabled account
    """
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("Login rejected", email=email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )

    user.last_login_at = utcnow()
    await db.commit()
    return issue_tokens(user)


async def get_active_user(db: AsyncSession, user_id: int) -> User | None:
    stmt = select(User).where(User.id == user_id, User.is_active.is_(True))
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


async def list_users(db: AsyncSession, page: int, limit: int) -> tuple[list[User], int]:
    total = (await db.execute(select(func.count(User.id)))).scalar() or 0
    stmt = select(User).order_by(User.id).offset(offset_for(page, limit)).limit(limit)
    return list((await db.execute(stmt)).scalars().all()), total


async def _ensure_email_free(db: AsyncSession, email: str, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("Email already registered", details={"email": email})


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Raises:
        ValidationFailedError: If a BUSINESS user has no existing business, or an ADMIN has one
        ConflictError: If the email is taken
    """
    if data.role == UserRole.BUSINESS.value:
        if data.business_id is None:
            raise ValidationFailedError("business_id is required for BUSINESS users")
        if await db.get(Business, data.business_id) is None:
            raise ValidationFailedError("Business not found", details={"business_id": data.business_id})
    elif data.business_id is not None:
        raise ValidationFailedError("Only BUSINESS users can be linked to a business")

    await _ensure_email_free(db, data.email)

    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        full_name=data.full_name,
        role=data.role,
        business_id=data.business_id,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User created", user_id=user.id, role=user.role)
    return user


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> User:
    user = await get_user(db, user_id)
    if data.email is not None and data.email != user.email:
        await _ensure_email_free(db, data.email, exclude_id=user_id)
        user.email = data.email
    if data.full_name is not None:
        user.full_name = data.full_name
    if data.is_active is not None:
        user.is_active = data.is_active

    await db.commit()
    await db.refresh(user)
    return user


async def deactivate_user(db: AsyncSession, user_id: int, admin_id: int) -> User:
    """Soft delete; users stay referenced by cycles and the audit trail."""
    if user_id == admin_id:
        raise ValidationFailedError("Cannot deactivate yourself")
    user = await get_user(db, user_id)
    user.is_active = False
    await db.commit()
    logger.info("User deactivated", user_id=user_id, admin_id=admin_id)
    return user
