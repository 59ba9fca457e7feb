from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser, TenantContext
from app.auth.security import decode_access_token
from app.db.session import get_db


# Token issuance lives with the identity provider; this service only verifies.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated staff member from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    branch_id_str = payload.get("branch_id")
    if not user_id_str or not branch_id_str:
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
        branch_id = UUID(branch_id_str)
    except ValueError:
        raise credentials_exception

    stmt = select(User).where(User.id == user_id, User.branch_id == branch_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if not user or user.status != "ACTIVE":
        raise credentials_exception

    return CurrentUser(
        id=user.id,
        name=user.name,
        role=user.role,
        branch_id=user.branch_id,
    )


async def get_tenant_context(
    current_user: CurrentUser = Depends(get_current_user),
) -> TenantContext:
    return current_user.context()
