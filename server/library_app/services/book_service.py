"""图书目录：分页/搜索查询与增删改。

书的 copies 列是在架库存（借出 -1，归还 +1）。
checked_out / total_copies / available_copies 都是读取时在 SQL 里现算的，不落库。
"""

import math
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.models.book import Book
from library_app.models.transaction import Transaction
from library_app.services.errors import ConflictError, ValidationError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

_UPDATABLE_FIELDS = ("title", "author", "isbn", "published_year", "genre", "copies")
_REQUIRED_FIELDS = ("title", "author", "copies")


def clamp_copies(copies: int | None, default: int = 1) -> int:
    """copies 不允许为空或负数"""
    if copies is None:
        return default
    return max(0, copies)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _checked_out_column():
    """未归还借阅数（相关子查询）"""
    return (
        select(func.count(Transaction.id))
        .where(Transaction.book_id == Book.id, Transaction.return_date.is_(None))
        .correlate(Book)
        .scalar_subquery()
        .label("checked_out")
    )


def _search_condition(search: str):
    pattern = f"%{_escape_like(search)}%"
    return or_(
        Book.title.ilike(pattern, escape="\\"),
        Book.author.ilike(pattern, escape="\\"),
        Book.genre.ilike(pattern, escape="\\"),
    )


def book_to_dict(book: Book, checked_out: int) -> dict[str, Any]:
    checked_out = checked_out or 0
    total_copies = book.copies + checked_out
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "isbn": book.isbn,
        "published_year": book.published_year,
        "genre": book.genre,
        "copies": book.copies,
        "checked_out": checked_out,
        "total_copies": total_copies,
        "available_copies": max(0, total_copies - checked_out),
        "created_at": book.created_at,
        "updated_at": book.updated_at,
    }


async def list_books(
    db: AsyncSession,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    search: str | None = None,
) -> dict[str, Any]:
    """分页 + 搜索（标题/作者/类型，不区分大小写的子串匹配），按标题、ID 升序"""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive integers")
    search = search.strip() if search else None

    count_stmt = select(func.count()).select_from(Book)
    stmt = select(Book, _checked_out_column())
    if search:
        condition = _search_condition(search)
        count_stmt = count_stmt.where(condition)
        stmt = stmt.where(condition)

    total = (await db.execute(count_stmt)).scalar() or 0

    result = await db.execute(
        stmt.order_by(Book.title.asc(), Book.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    books = [book_to_dict(book, checked_out) for book, checked_out in result.all()]

    return {
        "books": books,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit),
        },
    }


async def list_all_books(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Book, _checked_out_column()).order_by(Book.title.asc(), Book.id.asc())
    )
    return [book_to_dict(book, checked_out) for book, checked_out in result.all()]


async def get_book(db: AsyncSession, book_id: int) -> dict[str, Any] | None:
    result = await db.execute(
        select(Book, _checked_out_column()).where(Book.id == book_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return book_to_dict(row[0], row[1])


async def _ensure_isbn_free(db: AsyncSession, isbn: str | None, exclude_id: int | None = None) -> None:
    if not isbn:
        return
    stmt = select(Book.id).where(Book.isbn == isbn)
    if exclude_id is not None:
        stmt = stmt.where(Book.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"Book with ISBN {isbn} already exists")


async def create_book(db: AsyncSession, fields: dict[str, Any]) -> dict[str, Any]:
    """新增图书：copies 缺省为 1，负数按 0 处理"""
    isbn = fields.get("isbn") or None
    await _ensure_isbn_free(db, isbn)

    book = Book(
        title=fields["title"],
        author=fields["author"],
        isbn=isbn,
        published_year=fields.get("published_year"),
        genre=fields.get("genre"),
        copies=clamp_copies(fields.get("copies")),
    )
    db.add(book)
    await db.flush()
    return await get_book(db, book.id)


async def update_book(db: AsyncSession, book_id: int, fields: dict[str, Any]) -> dict[str, Any] | None:
    """
    只更新传入的字段。
    和借书/还书一样先锁住图书行，避免手工改库存覆盖并发的借还结果。
    """
    result = await db.execute(
        select(Book)
        .where(Book.id == book_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    book = result.scalar_one_or_none()
    if book is None:
        return None

    if "isbn" in fields:
        fields["isbn"] = fields["isbn"] or None
        await _ensure_isbn_free(db, fields["isbn"], exclude_id=book_id)

    for name in _UPDATABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if value is None and name in _REQUIRED_FIELDS:
            continue
        if name == "copies":
            value = clamp_copies(value)
        setattr(book, name, value)

    await db.flush()
    return await get_book(db, book_id)


async def delete_book(db: AsyncSession, book_id: int) -> bool:
    """删除图书，相关借阅记录由外键级联删除"""
    result = await db.execute(select(Book).where(Book.id == book_id))
    book = result.scalar_one_or_none()
    if book is None:
        return False
    await db.delete(book)
    await db.flush()
    return True
