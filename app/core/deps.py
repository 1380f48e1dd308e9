from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.security import decode_token
from app.db.session import get_session
from app.models.enums import UserRole
from app.repositories.user_repo import UserRepository

# Tokens are issued by the account service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
logger = get_logger()


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


def _unauthorized(detail: str) -> HTTPException:
    logger.info("auth_rejected", reason=detail)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def authenticate_token(token: str, session: AsyncSession):
    """Resolves an access token to its user; shared by HTTP dependencies and the edit-session socket."""
    try:
        claims = decode_token(token)
    except JWTError as exc:
        raise _unauthorized("Invalid token") from exc
    if claims.get("type") != "access":
        raise _unauthorized("Invalid token type")
    if not claims.get("sub"):
        raise _unauthorized("Invalid token subject")

    try:
        user = await UserRepository(session).get_by_id(claims["sub"])
    except ValueError as exc:
        raise _unauthorized("Invalid token subject") from exc
    if user is None:
        raise _unauthorized("User not found")
    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_db_session),
):
    return await authenticate_token(token, session)


async def get_admin_user(user=Depends(get_current_user)):
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
