"""前端使用的 /api 接口：图书目录分页、借书、还书"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.cache import CacheBackend, get_cache
from library_app.database import get_db
from library_app.routers.books import read_catalog_page
from library_app.routers.transactions import perform_checkout, perform_return
from library_app.schemas.book import BookListResponse
from library_app.schemas.transaction import CheckoutRequest, ReturnRequest, TransactionResponse
from library_app.services.book_service import DEFAULT_LIMIT, DEFAULT_PAGE
from library_app.utils.deps import TokenIdentity, get_token_identity

router = APIRouter(prefix="/api", tags=["前端 API"])


@router.get("/books", response_model=BookListResponse, summary="图书目录（分页 + 搜索）")
async def list_books(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
    search: str | None = Query(None, description="按标题/作者/类型搜索"),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await read_catalog_page(db, cache, page, limit, search)


@router.post("/checkout", response_model=TransactionResponse, status_code=201, summary="借书")
async def checkout(
    body: CheckoutRequest,
    identity: TokenIdentity = Depends(get_token_identity),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await perform_checkout(body, db, cache)


@router.post("/return", response_model=TransactionResponse, summary="还书")
async def return_(
    body: ReturnRequest,
    identity: TokenIdentity = Depends(get_token_identity),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await perform_return(body.id, identity, db, cache)
