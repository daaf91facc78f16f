"""示例图书 - 空库启动时灌入"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from library_app.models.book import Book


# 示例图书: (title, author, isbn, published_year, genre, copies)
SAMPLE_BOOKS: list[tuple[str, str, str, int, str, int]] = [
    ("To Kill a Mockingbird", "Harper Lee", "9780061120084", 1960, "Fiction", 5),
    ("1984", "George Orwell", "9780451524935", 1949, "Dystopian", 3),
    ("The Great Gatsby", "F. Scott Fitzgerald", "9780743273565", 1925, "Classic", 2),
    ("Pride and Prejudice", "Jane Austen", "9780141439518", 1813, "Romance", 4),
    ("The Hobbit", "J.R.R. Tolkien", "9780547928227", 1937, "Fantasy", 6),
]


async def seed_sample_books(db: AsyncSession) -> int:
    """books 表为空时插入示例图书，返回插入数量"""
    count = (await db.execute(select(func.count()).select_from(Book))).scalar() or 0
    if count > 0:
        return 0

    for title, author, isbn, published_year, genre, copies in SAMPLE_BOOKS:
        db.add(Book(
            title=title,
            author=author,
            isbn=isbn,
            published_year=published_year,
            genre=genre,
            copies=copies,
        ))
    await db.flush()
    return len(SAMPLE_BOOKS)
