"""测试公共 Fixtures：临时文件 SQLite + 独立 TestClient"""

import os
import tempfile

# 并发借书测试需要多个独立连接，不能用 :memory:（会共享同一个连接）
TEST_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="library-test-"), "test.db")
TEST_DB_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("SEED_SAMPLE_BOOKS", "false")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession  # noqa: E402

from library_app.cache import MemoryCache, get_cache  # noqa: E402
from library_app.database import Base, create_engine_for, get_db  # noqa: E402
from library_app.models.user import User  # noqa: E402
from library_app.models.book import Book  # noqa: E402
from library_app.models.transaction import Transaction  # noqa: E402,F401
from library_app.utils.security import hash_password, create_access_token  # noqa: E402


# ──────────── 测试数据库引擎 ────────────

test_engine = create_engine_for(TEST_DB_URL)
TestSessionLocal = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """每个测试前建表，测试后清表"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db():
    async with TestSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ──────────── 缓存（每个测试独立的进程内缓存） ────────────

@pytest_asyncio.fixture
async def cache() -> MemoryCache:
    return MemoryCache()


# ──────────── FastAPI TestClient ────────────

@pytest_asyncio.fixture
async def client(cache: MemoryCache):
    from library_app.main import app

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ──────────── 测试用户 ────────────

async def _create_user(email: str, password: str = "password123") -> User:
    async with TestSessionLocal() as db:
        user = User(email=email, password_hash=hash_password(password))
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


def _headers_for(user: User) -> dict:
    token = create_access_token(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user() -> User:
    return await _create_user("test@example.com")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    return _headers_for(test_user)


@pytest_asyncio.fixture
async def other_user() -> User:
    return await _create_user("other@example.com")


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return _headers_for(other_user)


# ──────────── 测试图书 ────────────

async def create_test_book(
    title: str = "Test Book",
    author: str = "Test Author",
    copies: int = 1,
    isbn: str | None = None,
    genre: str | None = "Test",
) -> Book:
    async with TestSessionLocal() as db:
        book = Book(
            title=title,
            author=author,
            isbn=isbn,
            published_year=2023,
            genre=genre,
            copies=copies,
        )
        db.add(book)
        await db.commit()
        await db.refresh(book)
        return book


async def get_copies(book_id: int) -> int:
    """直接读库里的在架库存"""
    async with TestSessionLocal() as db:
        book = await db.get(Book, book_id)
        return book.copies


@pytest_asyncio.fixture
async def make_book():
    return create_test_book


@pytest_asyncio.fixture
async def copies_of():
    return get_copies


@pytest_asyncio.fixture
async def session_factory():
    """独立 Session 工厂，服务层测试用（每个协程各开一个连接）"""
    return TestSessionLocal


@pytest_asyncio.fixture
async def sample_book() -> Book:
    """库存 1 本"""
    return await create_test_book(title="Test Book With Copies", isbn="1234567890", copies=1)


@pytest_asyncio.fixture
async def empty_book() -> Book:
    """库存 0 本"""
    return await create_test_book(title="Test Book With No Copies", isbn="0987654321", copies=0)
