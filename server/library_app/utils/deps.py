from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.database import get_db
from library_app.models.user import User
from library_app.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TokenIdentity:
    id: int
    email: str | None


async def get_token_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenIdentity:
    """JWT 鉴权依赖：缺少 Token → 401，Token 无效或过期 → 403"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")

    try:
        identity = TokenIdentity(id=int(payload["sub"]), email=payload.get("email"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")

    request.state.user = identity
    return identity


async def get_current_user(
    identity: TokenIdentity = Depends(get_token_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """解析 Token → 查询用户 → 返回 User 实例"""
    from library_app.services.auth_service import get_user_by_id

    user = await get_user_by_id(db, identity.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user
