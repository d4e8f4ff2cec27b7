from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.models import User
from schoolerp.auth.schemas import CurrentUser
from schoolerp.core.config import settings
from schoolerp.db.session import get_db


# Tokens are issued by the external auth service; this URL is only advertised in the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user and their school from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    role_name = payload.get("role")
    if not user_id_str or not role_name:
        raise credentials_exception

    school_id: Optional[UUID] = None
    try:
        user_id = UUID(user_id_str)
        if payload.get("school_id"):
            school_id = UUID(payload["school_id"])
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or user.status != "ACTIVE":
        raise credentials_exception
    # Token claims must agree with the stored account
    if user.role != role_name or user.school_id != school_id:
        raise credentials_exception

    return CurrentUser(
        id=user.id,
        school_id=user.school_id,
        role=user.role,
        full_name=user.full_name,
    )
