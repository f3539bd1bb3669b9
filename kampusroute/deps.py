"""Shared dependencies: get_post_repository, get_current_user."""
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from kampusroute.auth.jwt import decode_token, user_id_from_claims
from kampusroute.database import get_db
from kampusroute.models.user import User
from kampusroute.services.post_repository import PostRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_post_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> PostRepository:
    return PostRepository(db)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    repo: Annotated[PostRepository, Depends(get_post_repository)],
) -> User:
    """Validate JWT from Authorization: Bearer <token> and return the User.
    401 if the token is missing or the user is gone, 403 if the token doesn't verify."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")
    payload = decode_token(credentials.credentials)
    user_id = user_id_from_claims(payload) if payload else None
    if not user_id:
        logger.info("Rejected bearer token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Failed to authenticate token")
    user = await repo.get_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user
