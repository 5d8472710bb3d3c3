"""
Authentication utilities for bearer JWT verification.
"""
from datetime import datetime, timedelta, timezone
import jwt
from fastapi import HTTPException, status

from organic_groups.core import config


def create_access_token(user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    """
    Issue a signed token for a user.

    Args:
        user_id: ID of the user the token identifies
        expires_in: Lifetime of the token

    Returns:
        Encoded JWT
    """
    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT token and return payload.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload containing the user ID under "sub"

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True},
        )

        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
