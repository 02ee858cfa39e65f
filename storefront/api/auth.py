"""Session token verification (tokens are issued by the auth service)"""
from fastapi import Depends, HTTPException, Request, status
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError
from typing import Optional
from storefront.config import settings
import logging

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"


class CurrentUser(BaseModel):
    """Claims carried by the session token"""
    id: int
    is_admin: bool = False
    email: Optional[str] = None


def _read_token(request: Request) -> Optional[str]:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


def get_current_user(request: Request) -> CurrentUser:
    """Dependency: the logged-in user"""
    token = _read_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token, authorization denied"
        )

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return CurrentUser(
            id=payload["id"],
            is_admin=bool(payload.get("isAdmin", False)),
            email=payload.get("email"),
        )
    except (JWTError, KeyError, ValidationError) as e:
        logger.warning(f"Rejected session token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not valid"
        )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency: the logged-in user, who must be an administrator"""
    if not user.is_admin:
        logger.warning(f"User {user.id} denied admin access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
