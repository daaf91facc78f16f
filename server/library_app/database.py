"""数据库初始化 - async SQLAlchemy（默认 SQLite，生产可用 PostgreSQL）"""

from sqlalchemy import event, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from library_app.config import settings


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    SQLite 不支持 SELECT ... FOR UPDATE。
    每个事务以 BEGIN IMMEDIATE 开启，一开始就拿到写锁，
    借书/还书的加锁读-改-写因此和 PostgreSQL 行锁一样串行执行。
    同时为每个连接打开外键约束，保证级联删除生效。
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # 关闭驱动自带的隐式 BEGIN，交给下面的 begin 事件
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # 等待写锁的超时时间（秒）
        new_engine = create_async_engine(url, echo=False, connect_args={"timeout": 30})
    else:
        new_engine = create_async_engine(url, echo=False, pool_pre_ping=True)
    configure_sqlite(new_engine)
    return new_engine


engine = create_engine_for(settings.SQLALCHEMY_DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """创建所有表，对已有表做增量迁移，并按需灌入示例图书"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _migrate_transactions_due_date(conn)

    if settings.SEED_SAMPLE_BOOKS:
        from library_app.utils.seed import seed_sample_books

        async with AsyncSessionLocal() as db:
            await seed_sample_books(db)
            await db.commit()


async def _migrate_transactions_due_date(conn):
    """旧版 transactions 表没有 due_date 列，补上（已有记录保持 NULL）"""
    columns = await conn.run_sync(
        lambda sync_conn: {c["name"] for c in inspect(sync_conn).get_columns("transactions")}
    )
    if "due_date" not in columns:
        await conn.execute(text("ALTER TABLE transactions ADD COLUMN due_date TIMESTAMP"))
