import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.cache import (
    ALL_BOOKS_KEY,
    CacheBackend,
    book_key,
    catalog_key,
    get_cache,
    invalidate_books,
)
from library_app.database import get_db
from library_app.schemas.book import (
    BookCreateRequest,
    BookUpdateRequest,
    BookResponse,
    BookListResponse,
)
from library_app.services.book_service import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    list_books,
    list_all_books,
    get_book,
    create_book,
    update_book,
    delete_book,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["图书"])


async def read_catalog_page(
    db: AsyncSession,
    cache: CacheBackend,
    page: int,
    limit: int,
    search: str | None,
) -> dict:
    """分页目录：先查缓存（键 = page/limit/search），未命中再查库并写回"""
    search = search.strip() if search else None
    key = catalog_key(page, limit, search)

    cached = await cache.get(key)
    if cached is not None:
        logger.debug(f"目录缓存命中: {key}")
        return cached

    result = await list_books(db, page, limit, search)
    payload = BookListResponse.model_validate(result).model_dump(mode="json")
    await cache.set(key, payload)
    return payload


@router.get("/api/books", response_model=BookListResponse, summary="图书目录（分页）")
async def list_catalog(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
    search: str | None = Query(None, description="按标题/作者/类型搜索"),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await read_catalog_page(db, cache, page, limit, search)


@router.get("", response_model=list[BookResponse], summary="全部图书")
async def list_all(
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    cached = await cache.get(ALL_BOOKS_KEY)
    if cached is not None:
        return cached

    books = await list_all_books(db)
    payload = [BookResponse(**b).model_dump(mode="json") for b in books]
    await cache.set(ALL_BOOKS_KEY, payload)
    return payload


@router.get("/{book_id}", response_model=BookResponse, summary="图书详情")
async def get_detail(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    key = book_key(book_id)
    cached = await cache.get(key)
    if cached is not None:
        return cached

    book = await get_book(db, book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")

    payload = BookResponse(**book).model_dump(mode="json")
    await cache.set(key, payload)
    return payload


@router.post("", response_model=BookResponse, status_code=201, summary="新增图书")
async def create(
    body: BookCreateRequest,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    book = await create_book(db, body.model_dump())
    await db.commit()
    await invalidate_books(cache, book["id"])
    return BookResponse(**book)


@router.put("/{book_id}", response_model=BookResponse, summary="更新图书")
async def update(
    book_id: int,
    body: BookUpdateRequest,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """只更新请求里出现的字段"""
    book = await update_book(db, book_id, body.model_dump(exclude_unset=True))
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    await db.commit()
    await invalidate_books(cache, book_id)
    return BookResponse(**book)


@router.delete("/{book_id}", status_code=204, summary="删除图书")
async def delete(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    if not await delete_book(db, book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    await db.commit()
    await invalidate_books(cache, book_id)
    return Response(status_code=204)
