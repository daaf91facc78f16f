from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.cache import CacheBackend, get_cache, invalidate_books
from library_app.database import get_db
from library_app.models.user import User
from library_app.schemas.user import (
    RegisterRequest,
    LoginRequest,
    UserUpdateRequest,
    AuthResponse,
    UserResponse,
    UserUpdateResponse,
)
from library_app.services.auth_service import (
    register_user,
    authenticate_user,
    build_token,
    update_user,
    list_users,
    delete_user,
)
from library_app.utils.deps import TokenIdentity, get_current_user, get_token_identity

router = APIRouter(prefix="/users", tags=["用户"])


@router.post("/register", response_model=AuthResponse, status_code=201, summary="用户注册")
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """邮箱 + 密码注册，返回用户信息和 JWT Token"""
    user = await register_user(db, body.email, body.password)
    await db.commit()
    return AuthResponse(
        message="User registered successfully",
        user=UserResponse.model_validate(user),
        token=build_token(user),
    )


@router.post("/login", response_model=AuthResponse, summary="用户登录")
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """邮箱 + 密码登录，返回用户信息和 JWT Token"""
    user = await authenticate_user(db, body.email, body.password)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=build_token(user),
    )


@router.get("/me", response_model=UserResponse, summary="获取当前用户")
async def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.put("/me", response_model=UserUpdateResponse, summary="更新当前用户")
async def update_me(
    body: UserUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """修改邮箱和/或密码，未传的字段保持不变"""
    user = await update_user(db, current_user, email=body.email, password=body.password)
    await db.commit()
    return UserUpdateResponse(
        message="User updated successfully",
        user=UserResponse.model_validate(user),
    )


@router.get("", response_model=list[UserResponse], summary="用户列表")
async def list_all(db: AsyncSession = Depends(get_db)):
    users = await list_users(db)
    return [UserResponse.model_validate(u) for u in users]


@router.delete("/{user_id}", status_code=204, summary="删除用户（管理）")
async def delete(
    user_id: int,
    identity: TokenIdentity = Depends(get_token_identity),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """删除用户；其未归还的书回到库存"""
    book_ids = await delete_user(db, user_id)
    await db.commit()
    for book_id in book_ids:
        await invalidate_books(cache, book_id)
    return Response(status_code=204)
