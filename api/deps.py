from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import Role, User
from app.utils.security import decode_token
from core.db import get_db
from core.exceptions.base import ForbiddenException, UnauthorizedException

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db_session: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user from JWT token."""
    if not token:
        raise UnauthorizedException(message="Not authenticated")

    payload = decode_token(token)

    if payload.get("type") != "access":
        raise UnauthorizedException(message="Invalid token type")

    user_id = payload.get("sub")
    user = await User.get_by_id(db_session, user_id)

    if not user:
        raise UnauthorizedException(message="User not found")

    if not user.is_active:
        raise UnauthorizedException(message="User is inactive")

    return user


async def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get the current user if they have admin or owner role."""
    if current_user.role not in [Role.ADMIN, Role.OWNER]:
        raise ForbiddenException(message="Admin access required")
    return current_user


def ensure_family_access(user: User, family_id: Optional[str]) -> None:
    """
    Allow admins everywhere and parents only within their own family.

    Raises:
        ForbiddenException: Parent acting on another family's records
    """
    if user.is_admin:
        return
    if user.role != Role.PARENT or not family_id or user.family_id != family_id:
        raise ForbiddenException(message="You don't have access to this family")
