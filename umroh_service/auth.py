from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session
from typing import Annotated
from jose import jwt, JWTError

from . import crud, models
from .config import settings
from .database import get_db

api_key_header = APIKeyHeader(name="Authorization")


def _profile_id_from_header(authorization: str) -> int:
    """'Bearer <jwt>' -> the profile ID in its `sub` claim."""
    scheme, jwt_token = authorization.split()
    if scheme.lower() != "bearer":
        raise ValueError(f"Unsupported authorization scheme: {scheme}")
    payload = jwt.decode(jwt_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    return int(payload.get("sub"))


async def get_key_by_user_id_or_ip(request: Request) -> str:
    """
    Rate-limit key. Admins opening the trigger from the dashboard are
    limited per profile; cron jobs call it without a token and are
    limited per IP.
    """
    try:
        return f"profile:{_profile_id_from_header(request.headers.get('Authorization'))}"
    except (JWTError, ValueError, AttributeError, TypeError):
        return request.client.host


async def get_current_user_id_from_token(
        token: Annotated[str, Depends(api_key_header)]
) -> int:
    """
    Decodes the JWT from the 'Authorization: Bearer ...' header to get the
    profile ID.
    """
    try:
        return _profile_id_from_header(token)
    except (JWTError, ValueError, AttributeError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_admin(
        user_id: Annotated[int, Depends(get_current_user_id_from_token)],
        db: Session = Depends(get_db),
) -> models.Profile:
    profile = crud.get_profile(db, profile_id=user_id)
    if profile is None or profile.role != models.UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return profile
