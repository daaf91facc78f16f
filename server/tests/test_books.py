"""图书目录功能测试

覆盖端点：
- GET /api/books、GET /books/api/books（分页 + 搜索）
- GET /books、GET /books/{book_id}
- POST /books、PUT /books/{book_id}、DELETE /books/{book_id}
"""

import pytest
from httpx import AsyncClient

from library_app.cache import ALL_BOOKS_KEY, book_key, catalog_key


class TestCatalog:

    @pytest.mark.asyncio
    async def test_empty_catalog(self, client: AsyncClient):
        resp = await client.get("/api/books")
        assert resp.status_code == 200
        data = resp.json()
        assert data["books"] == []
        assert data["pagination"] == {"total": 0, "page": 1, "limit": 10, "pages": 0}

    @pytest.mark.asyncio
    async def test_pagination(self, client: AsyncClient, make_book):
        """12 本书，每页 5 本 → 3 页，第 3 页 2 本"""
        for i in range(12):
            await make_book(title=f"Book {i:02d}")

        resp = await client.get("/api/books", params={"page": 3, "limit": 5})
        assert resp.status_code == 200
        data = resp.json()
        assert data["pagination"] == {"total": 12, "page": 3, "limit": 5, "pages": 3}
        assert [b["title"] for b in data["books"]] == ["Book 10", "Book 11"]

    @pytest.mark.asyncio
    async def test_pages_are_disjoint(self, client: AsyncClient, make_book):
        """相邻两页不重叠，合起来覆盖全部"""
        for i in range(7):
            await make_book(title=f"Vol {i}")

        page1 = await client.get("/api/books", params={"page": 1, "limit": 4})
        page2 = await client.get("/api/books", params={"page": 2, "limit": 4})
        ids1 = {b["id"] for b in page1.json()["books"]}
        ids2 = {b["id"] for b in page2.json()["books"]}
        assert ids1.isdisjoint(ids2)
        assert len(ids1 | ids2) == 7
        assert page1.json()["pagination"]["pages"] == 2

    @pytest.mark.asyncio
    async def test_search_no_match(self, client: AsyncClient, make_book):
        await make_book(title="Something")
        resp = await client.get("/api/books", params={"search": "zzzz"})
        data = resp.json()
        assert data["books"] == []
        assert data["pagination"]["total"] == 0
        assert data["pagination"]["pages"] == 0

    @pytest.mark.asyncio
    async def test_page_past_end(self, client: AsyncClient, make_book):
        """超出页数 → 空列表，total 不变"""
        await make_book()
        resp = await client.get("/api/books", params={"page": 5})
        data = resp.json()
        assert data["books"] == []
        assert data["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_ordered_by_title(self, client: AsyncClient, make_book):
        for title in ("Zebra", "Apple", "Mango"):
            await make_book(title=title)
        resp = await client.get("/api/books")
        assert [b["title"] for b in resp.json()["books"]] == ["Apple", "Mango", "Zebra"]

    @pytest.mark.asyncio
    async def test_search_matches_title_author_genre(self, client: AsyncClient, make_book):
        """搜索不区分大小写，匹配标题、作者或类型"""
        await make_book(title="The Hobbit", author="J.R.R. Tolkien", genre="Fantasy")
        await make_book(title="1984", author="George Orwell", genre="Dystopian")
        await make_book(title="Animal Farm", author="George Orwell", genre="Satire")

        by_title = await client.get("/api/books", params={"search": "hobbit"})
        assert [b["title"] for b in by_title.json()["books"]] == ["The Hobbit"]

        by_author = await client.get("/api/books", params={"search": "ORWELL"})
        assert by_author.json()["pagination"]["total"] == 2

        by_genre = await client.get("/api/books", params={"search": "dystop"})
        assert [b["title"] for b in by_genre.json()["books"]] == ["1984"]

    @pytest.mark.asyncio
    async def test_search_wildcards_are_literal(self, client: AsyncClient, make_book):
        """% 和 _ 按字面匹配"""
        await make_book(title="100% Pure")
        await make_book(title="Plain")
        resp = await client.get("/api/books", params={"search": "%"})
        assert [b["title"] for b in resp.json()["books"]] == ["100% Pure"]

    @pytest.mark.asyncio
    async def test_invalid_page(self, client: AsyncClient):
        """page < 1 → 400"""
        resp = await client.get("/api/books", params={"page": 0})
        assert resp.status_code == 400
        assert "message" in resp.json()

    @pytest.mark.asyncio
    async def test_books_prefix_alias(self, client: AsyncClient, make_book):
        await make_book()
        resp = await client.get("/books/api/books")
        assert resp.status_code == 200
        assert resp.json()["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_available_copies_derived(
        self, client: AsyncClient, auth_headers, test_user, make_book
    ):
        """借出一本后 available_copies - 1，total_copies 不变"""
        book = await make_book(copies=3)
        await client.post("/api/checkout", json={
            "user_id": test_user.id,
            "book_id": book.id,
        }, headers=auth_headers)

        resp = await client.get("/api/books")
        entry = resp.json()["books"][0]
        assert entry["total_copies"] == 3
        assert entry["checked_out"] == 1
        assert entry["available_copies"] == 2


class TestBookCrud:

    @pytest.mark.asyncio
    async def test_create_book(self, client: AsyncClient):
        resp = await client.post("/books", json={
            "title": "Dune",
            "author": "Frank Herbert",
            "isbn": "9780441013593",
            "published_year": 1965,
            "genre": "Science Fiction",
            "copies": 4,
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["title"] == "Dune"
        assert data["available_copies"] == 4
        assert data["checked_out"] == 0

    @pytest.mark.asyncio
    async def test_create_book_default_copies(self, client: AsyncClient):
        """copies 缺省为 1"""
        resp = await client.post("/books", json={"title": "Solo", "author": "Someone"})
        assert resp.status_code == 201
        assert resp.json()["copies"] == 1

    @pytest.mark.asyncio
    async def test_create_book_negative_copies(self, client: AsyncClient):
        """负数库存按 0 处理"""
        resp = await client.post("/books", json={"title": "Neg", "author": "A", "copies": -3})
        assert resp.status_code == 201
        assert resp.json()["copies"] == 0

    @pytest.mark.asyncio
    async def test_create_book_missing_title(self, client: AsyncClient):
        resp = await client.post("/books", json={"author": "Nobody"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_create_book_duplicate_isbn(self, client: AsyncClient, sample_book):
        resp = await client.post("/books", json={
            "title": "Copy",
            "author": "Cat",
            "isbn": sample_book.isbn,
        })
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_get_book(self, client: AsyncClient, sample_book):
        resp = await client.get(f"/books/{sample_book.id}")
        assert resp.status_code == 200
        assert resp.json()["title"] == sample_book.title

    @pytest.mark.asyncio
    async def test_get_book_not_found(self, client: AsyncClient):
        resp = await client.get("/books/9999")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Book not found"}

    @pytest.mark.asyncio
    async def test_list_all_books(self, client: AsyncClient, sample_book, empty_book):
        resp = await client.get("/books")
        assert resp.status_code == 200
        assert {b["id"] for b in resp.json()} == {sample_book.id, empty_book.id}

    @pytest.mark.asyncio
    async def test_partial_update(self, client: AsyncClient, sample_book):
        """只改传入字段"""
        resp = await client.put(f"/books/{sample_book.id}", json={"genre": "Poetry"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["genre"] == "Poetry"
        assert data["title"] == sample_book.title
        assert data["copies"] == 1

    @pytest.mark.asyncio
    async def test_update_not_found(self, client: AsyncClient):
        resp = await client.put("/books/9999", json={"title": "x"})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_book(self, client: AsyncClient, sample_book):
        resp = await client.delete(f"/books/{sample_book.id}")
        assert resp.status_code == 204
        resp = await client.get(f"/books/{sample_book.id}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_book_not_found(self, client: AsyncClient):
        resp = await client.delete("/books/9999")
        assert resp.status_code == 404


class TestBookCache:

    @pytest.mark.asyncio
    async def test_catalog_is_cached(self, client: AsyncClient, cache, sample_book):
        await client.get("/api/books", params={"page": 1, "limit": 10})
        assert catalog_key(1, 10, None) in cache.keys()

        await client.get(f"/books/{sample_book.id}")
        assert book_key(sample_book.id) in cache.keys()

    @pytest.mark.asyncio
    async def test_write_invalidates_cache(self, client: AsyncClient, cache, sample_book):
        """更新图书后目录、全量列表和单本缓存都失效，再读拿到新值"""
        await client.get("/api/books")
        await client.get("/books")
        await client.get(f"/books/{sample_book.id}")

        await client.put(f"/books/{sample_book.id}", json={"title": "Renamed"})
        assert cache.keys() == []

        resp = await client.get("/api/books")
        assert resp.json()["books"][0]["title"] == "Renamed"

    @pytest.mark.asyncio
    async def test_create_invalidates_catalog(self, client: AsyncClient, cache):
        await client.get("/api/books")
        await client.post("/books", json={"title": "Fresh", "author": "A"})
        assert ALL_BOOKS_KEY not in cache.keys()
        resp = await client.get("/api/books")
        assert resp.json()["pagination"]["total"] == 1
