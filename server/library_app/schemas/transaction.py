"""借阅记录 Pydantic Schema"""

from datetime import datetime
from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    user_id: int = Field(..., description="借书用户 ID")
    book_id: int = Field(..., description="图书 ID")
    due_date: datetime | None = Field(None, description="应还日期，默认按借阅期限计算")


class ReturnRequest(BaseModel):
    id: int = Field(..., description="借阅记录 ID")


class TransactionResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    checkout_date: datetime
    due_date: datetime | None
    return_date: datetime | None
    created_at: datetime
    updated_at: datetime
    user_email: str | None = None
    book_title: str | None = None

    model_config = {"from_attributes": True}
