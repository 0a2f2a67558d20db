# campusskill/core/auth.py
from dataclasses import dataclass
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from campusskill.database import get_db
from campusskill.errors import AuthenticationError
from campusskill.models.user import User, UserRole
from campusskill.core.security import decode_access_token

reusable_oauth2 = HTTPBearer()


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as seen by the core services."""
    user_id: int
    role: UserRole
    name: str = ""


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token.credentials)
        user_id = int(payload["sub"])
    except (AuthenticationError, KeyError, TypeError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


async def get_identity(current_user: User = Depends(get_current_user)) -> Identity:
    return Identity(user_id=current_user.id, role=current_user.role, name=current_user.name)


async def get_current_student(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role != UserRole.STUDENT:
        raise HTTPException(403, "Only students can take tasks")
    return identity
