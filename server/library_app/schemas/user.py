from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


# ---- 请求 ----

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class LoginRequest(BaseModel):
    # 格式不合法的邮箱按凭据错误（401）处理
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserUpdateRequest(BaseModel):
    email: EmailStr | None = None
    password: str | None = Field(None, max_length=128)


# ---- 响应 ----

class UserResponse(BaseModel):
    """公开资料，不包含密码哈希"""

    id: int
    email: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    token: str


class UserUpdateResponse(BaseModel):
    message: str
    user: UserResponse
