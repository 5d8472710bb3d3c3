"""
FastAPI dependencies for authentication and authorization.
"""
from typing import Annotated, Union
from datetime import datetime
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.database.engine import get_db
from organic_groups.features.users.models import User, AnonymousUser, ANONYMOUS_USER
from organic_groups.features.users.auth import verify_jwt_token


security = HTTPBearer(auto_error=False)


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Union[User, AnonymousUser]:
    """
    Get the acting account: the token's user, or the anonymous sentinel.

    This dependency:
    1. Extracts JWT from Authorization header (if any)
    2. Verifies the JWT signature and expiry
    3. Looks up the user in the local database
    4. Updates last_login_at timestamp
    """
    if credentials is None:
        return ANONYMOUS_USER

    payload = verify_jwt_token(credentials.credentials)
    user_id = payload.get("sub")

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user.last_login_at = datetime.utcnow()
    await db.commit()
    await db.refresh(user)

    return user


async def get_current_user(
    account: Annotated[Union[User, AnonymousUser], Depends(get_current_account)]
) -> User:
    """
    Require an authenticated user.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if not account.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Require admin privileges.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            role_id: str,
            admin: User = Depends(get_current_admin_user)
        ):
            # Only admins can access this endpoint
            ...
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
