from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.models.transaction import Transaction
from library_app.models.user import User
from library_app.services.errors import ConflictError, NotFoundError, UnauthenticatedError
from library_app.services.transaction_service import lock_book
from library_app.utils.security import hash_password, verify_password, create_access_token


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """根据邮箱查找用户"""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """根据 ID 查找用户"""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.email))
    return list(result.scalars().all())


async def register_user(db: AsyncSession, email: str, password: str) -> User:
    """注册新用户，返回 User 实例。邮箱重复时抛 ConflictError。"""
    existing = await get_user_by_email(db, email)
    if existing:
        raise ConflictError("Email already exists")

    user = User(email=email, password_hash=hash_password(password))
    db.add(user)
    await db.flush()  # 获取 id 等默认值，但不 commit（由 get_db 统一提交）
    await db.refresh(user)
    return user


async def validate_credentials(db: AsyncSession, email: str, password: str) -> User | None:
    """邮箱不存在或密码不匹配时返回 None"""
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """验证邮箱+密码，返回 User。失败抛 UnauthenticatedError。"""
    user = await validate_credentials(db, email, password)
    if user is None:
        raise UnauthenticatedError("Invalid email or password")
    return user


def build_token(user: User) -> str:
    return create_access_token(user.id, user.email)


async def update_user(
    db: AsyncSession,
    user: User,
    email: str | None = None,
    password: str | None = None,
) -> User:
    """只更新传入的字段；两者都没有时原样返回"""
    if email is None and not password:
        return user

    if email is not None and email != user.email:
        existing = await get_user_by_email(db, email)
        if existing and existing.id != user.id:
            raise ConflictError("Email already exists")
        user.email = email
    if password:
        user.password_hash = hash_password(password)
    await db.flush()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user_id: int) -> list[int]:
    """
    删除用户，借阅记录由外键级联删除。
    未归还的书先把库存加回去（加行锁），返回受影响的图书 ID。
    """
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")

    result = await db.execute(
        select(Transaction.book_id).where(
            Transaction.user_id == user_id,
            Transaction.return_date.is_(None),
        )
    )
    book_ids = [row[0] for row in result.all()]
    for book_id in book_ids:
        book = await lock_book(db, book_id)
        if book is not None:
            book.copies = book.copies + 1

    await db.delete(user)
    await db.flush()
    return sorted(set(book_ids))
