"""FastAPI dependency injection for authentication and database."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.security import OwnerContext, get_owner_from_token
from basket.db.session import get_db
from basket.services.grouping import GroupingService

__all__ = ["get_db", "get_current_owner", "get_grouping_service"]

# OAuth2 bearer token scheme
security = HTTPBearer()


async def get_current_owner(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> OwnerContext:
    """
    Resolve the calling account from its JWT.

    Args:
        request: Incoming request (the owner is attached for request logging)
        credentials: HTTP bearer token credentials

    Returns:
        Owner context with the account id and global write permission

    Raises:
        HTTPException: If token is invalid, expired or has no valid subject
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        owner = get_owner_from_token(credentials.credentials)
    except JWTError:
        raise credentials_exception
    except ValueError:
        raise credentials_exception

    request.state.owner = owner
    return owner


async def get_grouping_service(
    owner: OwnerContext = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> GroupingService:
    """
    Get grouping service instance for the calling account.

    Args:
        owner: Authenticated account
        db: Database session

    Returns:
        GroupingService instance
    """
    return GroupingService(db, owner)
