"""
借书 / 还书：库存一致性的核心。

借书和还书都是同一个数据库事务里的“加锁读 → 校验 → 改库存 → 写借阅记录”：
  - 借书锁图书行（SELECT ... FOR UPDATE），同一本书的并发借书排队执行，
    后来者在前一个提交后重新读到已扣减的库存，不会超借；
  - 还书锁借阅记录行，同一条记录的并发还书只有一个能成功，库存不会加两次。
任何一步失败都整体回滚，调用方看到异常即可认为库存和借阅记录都没有变化。
锁只依赖数据库（SQLite 下见 database.configure_sqlite），不使用进程内锁。
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.config import settings
from library_app.models.book import Book
from library_app.models.transaction import Transaction
from library_app.models.user import User
from library_app.services.errors import (
    AlreadyReturnedError,
    ForbiddenError,
    NoCopiesAvailableError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


async def lock_book(db: AsyncSession, book_id: int) -> Book | None:
    result = await db.execute(
        select(Book)
        .where(Book.id == book_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _lock_transaction(db: AsyncSession, transaction_id: int) -> Transaction | None:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ─────────────────────── 借书 / 还书 ───────────────────────


async def checkout(
    db: AsyncSession,
    user_id: int,
    book_id: int,
    due_date: datetime | None = None,
) -> Transaction:
    """借出一本书：库存 -1 并新建借阅记录，成功后提交"""
    try:
        book = await lock_book(db, book_id)
        if book is None:
            raise NotFoundError(f"Book with ID {book_id} not found")

        # 在架库存，和未归还借阅数同步变化，等价于 available_copies > 0
        if book.copies <= 0:
            raise NoCopiesAvailableError(f"No copies available for book with ID {book_id}")

        user = (await db.execute(select(User.id).where(User.id == user_id))).first()
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")

        book.copies = book.copies - 1

        now = datetime.utcnow()
        txn = Transaction(
            user_id=user_id,
            book_id=book_id,
            checkout_date=now,
            due_date=due_date or now + timedelta(days=settings.LOAN_PERIOD_DAYS),
            return_date=None,
        )
        db.add(txn)
        await db.flush()
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"借书失败 user={user_id} book={book_id}: {e}")
        raise

    logger.info(f"借书成功 transaction={txn.id} user={user_id} book={book_id} 剩余库存={book.copies}")
    return txn


async def return_book(
    db: AsyncSession,
    transaction_id: int,
    caller_user_id: int | None = None,
) -> Transaction:
    """
    归还：写入 return_date，库存 +1，成功后提交。
    caller_user_id 不为空时只允许借书人本人归还；在锁内校验，和修改是原子的。
    """
    try:
        txn = await _lock_transaction(db, transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction with ID {transaction_id} not found")

        if caller_user_id is not None and txn.user_id != caller_user_id:
            raise ForbiddenError("You are not authorized to return this book")

        if txn.return_date is not None:
            raise AlreadyReturnedError(
                f"Book already returned for transaction with ID {transaction_id}"
            )

        txn.return_date = datetime.utcnow()

        book = await lock_book(db, txn.book_id)
        if book is not None:
            book.copies = book.copies + 1

        await db.flush()
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"还书失败 transaction={transaction_id}: {e}")
        raise

    logger.info(f"还书成功 transaction={transaction_id} book={txn.book_id}")
    return txn


async def delete_transaction(db: AsyncSession, transaction_id: int) -> int:
    """删除借阅记录；未归还的记录同时把库存加回去。返回所属图书 ID。"""
    try:
        txn = await _lock_transaction(db, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")

        book_id = txn.book_id
        if txn.return_date is None:
            book = await lock_book(db, book_id)
            if book is not None:
                book.copies = book.copies + 1

        await db.delete(txn)
        await db.flush()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"删除借阅记录 transaction={transaction_id}")
    return book_id


# ─────────────────────── 只读查询（不加锁） ───────────────────────


def transaction_to_dict(
    txn: Transaction,
    user_email: str | None = None,
    book_title: str | None = None,
) -> dict[str, Any]:
    return {
        "id": txn.id,
        "user_id": txn.user_id,
        "book_id": txn.book_id,
        "checkout_date": txn.checkout_date,
        "due_date": txn.due_date,
        "return_date": txn.return_date,
        "created_at": txn.created_at,
        "updated_at": txn.updated_at,
        "user_email": user_email,
        "book_title": book_title,
    }


def _select_with_names():
    return (
        select(Transaction, User.email, Book.title)
        .join(User, Transaction.user_id == User.id)
        .join(Book, Transaction.book_id == Book.id)
    )


async def _fetch(db: AsyncSession, stmt) -> list[dict[str, Any]]:
    result = await db.execute(stmt)
    return [transaction_to_dict(txn, email, title) for txn, email, title in result.all()]


async def list_transactions(db: AsyncSession) -> list[dict[str, Any]]:
    return await _fetch(
        db,
        _select_with_names().order_by(Transaction.checkout_date.desc(), Transaction.id.desc()),
    )


async def get_transaction(db: AsyncSession, transaction_id: int) -> dict[str, Any] | None:
    rows = await _fetch(db, _select_with_names().where(Transaction.id == transaction_id))
    return rows[0] if rows else None


async def list_by_user(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    return await _fetch(
        db,
        _select_with_names()
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.checkout_date.desc(), Transaction.id.desc()),
    )


async def list_by_book(db: AsyncSession, book_id: int) -> list[dict[str, Any]]:
    return await _fetch(
        db,
        _select_with_names()
        .where(Transaction.book_id == book_id)
        .order_by(Transaction.checkout_date.desc(), Transaction.id.desc()),
    )


async def list_active(db: AsyncSession) -> list[dict[str, Any]]:
    """未归还的借阅，按应还日期升序"""
    return await _fetch(
        db,
        _select_with_names()
        .where(Transaction.return_date.is_(None))
        .order_by(Transaction.due_date.asc(), Transaction.id.asc()),
    )


async def list_overdue(db: AsyncSession, now: datetime | None = None) -> list[dict[str, Any]]:
    """未归还且已过应还日期"""
    now = now or datetime.utcnow()
    return await _fetch(
        db,
        _select_with_names()
        .where(Transaction.return_date.is_(None), Transaction.due_date < now)
        .order_by(Transaction.due_date.asc(), Transaction.id.asc()),
    )
