from datetime import datetime

from pydantic import BaseModel, Field


class BookCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    isbn: str | None = Field(None, max_length=20)
    published_year: int | None = None
    genre: str | None = Field(None, max_length=100)
    copies: int | None = Field(None, description="在架库存，缺省为 1，负数按 0 处理")


class BookUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    author: str | None = Field(None, min_length=1, max_length=255)
    isbn: str | None = Field(None, max_length=20)
    published_year: int | None = None
    genre: str | None = Field(None, max_length=100)
    copies: int | None = None


class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    isbn: str | None
    published_year: int | None
    genre: str | None
    copies: int = Field(description="在架库存")
    checked_out: int = Field(description="未归还借阅数")
    total_copies: int = Field(description="馆藏总数 = 在架 + 借出")
    available_copies: int = Field(description="可借数量 = 馆藏总数 - 借出")
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class BookListResponse(BaseModel):
    books: list[BookResponse]
    pagination: Pagination
