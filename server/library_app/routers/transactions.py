"""借阅 API 路由（全部需要登录）"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.cache import CacheBackend, get_cache, invalidate_books
from library_app.database import get_db
from library_app.schemas.transaction import CheckoutRequest, TransactionResponse
from library_app.services.errors import NotFoundError
from library_app.services.transaction_service import (
    checkout,
    return_book,
    delete_transaction,
    transaction_to_dict,
    list_transactions,
    get_transaction,
    list_by_user,
    list_by_book,
    list_active,
    list_overdue,
)
from library_app.utils.deps import TokenIdentity, get_token_identity

router = APIRouter(
    prefix="/transactions",
    tags=["借阅"],
    dependencies=[Depends(get_token_identity)],
)


async def perform_checkout(
    body: CheckoutRequest,
    db: AsyncSession,
    cache: CacheBackend,
) -> TransactionResponse:
    """借书：图书或用户不存在时按 400 返回"""
    try:
        txn = await checkout(db, body.user_id, body.book_id, body.due_date)
    except NotFoundError as e:
        raise HTTPException(status_code=400, detail=e.detail)

    # 库存变了，图书缓存一并失效
    await invalidate_books(cache, body.book_id)
    return TransactionResponse(**transaction_to_dict(txn))


async def perform_return(
    transaction_id: int,
    identity: TokenIdentity,
    db: AsyncSession,
    cache: CacheBackend,
) -> TransactionResponse:
    """还书：只有借书人本人可以归还"""
    txn = await return_book(db, transaction_id, caller_user_id=identity.id)
    await invalidate_books(cache, txn.book_id)
    return TransactionResponse(**transaction_to_dict(txn))


# ───── 查询 ─────


@router.get("", response_model=list[TransactionResponse])
async def list_all(db: AsyncSession = Depends(get_db)):
    return await list_transactions(db)


@router.get("/active", response_model=list[TransactionResponse])
async def list_active_endpoint(db: AsyncSession = Depends(get_db)):
    """未归还的借阅（按应还日期升序）"""
    return await list_active(db)


@router.get("/overdue", response_model=list[TransactionResponse])
async def list_overdue_endpoint(db: AsyncSession = Depends(get_db)):
    """已逾期未归还的借阅"""
    return await list_overdue(db)


@router.get("/user/{user_id}", response_model=list[TransactionResponse])
async def list_by_user_endpoint(user_id: int, db: AsyncSession = Depends(get_db)):
    return await list_by_user(db, user_id)


@router.get("/book/{book_id}", response_model=list[TransactionResponse])
async def list_by_book_endpoint(book_id: int, db: AsyncSession = Depends(get_db)):
    return await list_by_book(db, book_id)


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_detail(transaction_id: int, db: AsyncSession = Depends(get_db)):
    txn = await get_transaction(db, transaction_id)
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


# ───── 借书 / 还书 ─────


@router.post("", response_model=TransactionResponse, status_code=201)
async def checkout_endpoint(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await perform_checkout(body, db, cache)


@router.put("/{transaction_id}/return", response_model=TransactionResponse)
async def return_endpoint(
    transaction_id: int,
    identity: TokenIdentity = Depends(get_token_identity),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    return await perform_return(transaction_id, identity, db, cache)


@router.delete("/{transaction_id}", status_code=204)
async def delete_endpoint(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    book_id = await delete_transaction(db, transaction_id)
    await invalidate_books(cache, book_id)
    return Response(status_code=204)
