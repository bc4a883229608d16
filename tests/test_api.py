import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from bookstore.config import settings
from bookstore.crud.memory_book import MemoryBookstore
from bookstore.main import app, create_app
from bookstore.tenants import get_bookstore

BOOKS_URL = f"{settings.api_prefix}/books"
GO_ISBN = "978-0134190440"


class RecordingBookstore(MemoryBookstore):
    """Хранилище в памяти, запоминающее вызовы"""

    def __init__(self) -> None:
        super().__init__()
        self.calls = []

    async def get(self, isbn):
        self.calls.append(("get", isbn))
        return await super().get(isbn)

    async def update(self, isbn, patch):
        self.calls.append(("update", isbn))
        return await super().update(isbn, patch)

    async def delete(self, isbn):
        self.calls.append(("delete", isbn))
        return await super().delete(isbn)


@pytest.fixture
def store():
    return RecordingBookstore()


@pytest.fixture
def client(store, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "db_path", str(tmp_path / "db"))
    app.dependency_overrides[get_bookstore] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(client, go_book, manifesto):
    for book in (go_book, manifesto):
        response = client.post(BOOKS_URL, json=book.model_dump())
        assert response.status_code == 200
    return client


def test_get_books(seeded, go_book, manifesto):
    response = seeded.get(BOOKS_URL)
    assert response.status_code == 200
    assert response.json() == [
        go_book.to_partial().model_dump(),
        manifesto.to_partial().model_dump(),
    ]


def test_get_books_empty(client):
    response = client.get(BOOKS_URL)
    assert response.status_code == 200
    assert response.json() == []


def test_add_book(client):
    book = {
        "isbn": "978-1492052593",
        "title": "Programming Rust: Fast, Safe Systems Development (2nd Edition)",
        "author": "Jim Blandy, Jason Orendorff",
        "price": 3847,
    }
    response = client.post(BOOKS_URL, json=book)
    assert response.status_code == 200
    assert response.content == b""

    response = client.get(f"{BOOKS_URL}/978-1492052593")
    assert response.status_code == 200
    assert response.json() == {
        **book,
        "rating": None,
        "summary": None,
        "language": None,
        "published_date": None,
    }


def test_add_duplicate(seeded, go_book):
    response = seeded.post(BOOKS_URL, json={**go_book.model_dump(), "title": "Other"})
    assert response.status_code == 409
    assert response.json()["kind"] == "already_exists"

    assert seeded.get(f"{BOOKS_URL}/{GO_ISBN}").json()["title"] == go_book.title


@pytest.mark.parametrize("changes", [
    {"price": -1},
    {"title": ""},
    {"author": ""},
    {"isbn": "not-an-isbn"},
    {"published_date": "yesterday"},
])
def test_add_invalid_book(client, go_book, changes):
    response = client.post(BOOKS_URL, json={**go_book.model_dump(), **changes})
    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "validation"
    assert body["message"]


@pytest.mark.parametrize("payload", [
    {"isbn": GO_ISBN, "author": "Somebody", "price": 100},
    {"isbn": GO_ISBN, "title": "T", "author": "A", "price": "cheap"},
    {"isbn": GO_ISBN, "title": "T", "author": "A", "price": 35.99},
])
def test_add_malformed_body(client, payload):
    response = client.post(BOOKS_URL, json=payload)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"


def test_get_book(seeded, manifesto):
    response = seeded.get(f"{BOOKS_URL}/{manifesto.isbn}")
    assert response.status_code == 200
    assert response.json() == manifesto.model_dump()


def test_get_book_not_found(client):
    response = client.get(f"{BOOKS_URL}/{GO_ISBN}")
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


@pytest.mark.parametrize("method", ["get", "patch", "delete"])
def test_invalid_isbn_never_reaches_store(client, store, method):
    kwargs = {"json": {"price": 1}} if method == "patch" else {}
    response = getattr(client, method)(f"{BOOKS_URL}/9780134190440", **kwargs)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert store.calls == []


def test_patch_price(seeded, manifesto):
    response = seeded.patch(f"{BOOKS_URL}/{manifesto.isbn}", json={"price": 3000})
    assert response.status_code == 200
    assert response.json() == {**manifesto.model_dump(), "price": 3000}


def test_patch_clears_rating(seeded, manifesto):
    response = seeded.patch(f"{BOOKS_URL}/{manifesto.isbn}", json={"rating": None})
    assert response.status_code == 200
    assert response.json() == {**manifesto.model_dump(), "rating": None}


def test_patch_returns_stored_view(seeded, store, manifesto):
    store.calls.clear()
    seeded.patch(f"{BOOKS_URL}/{manifesto.isbn}", json={"language": "de"})
    assert store.calls == [("update", manifesto.isbn), ("get", manifesto.isbn)]


def test_patch_not_found(client):
    response = client.patch(f"{BOOKS_URL}/{GO_ISBN}", json={"price": 3000})
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_patch_invalid_result(seeded, go_book):
    response = seeded.patch(f"{BOOKS_URL}/{GO_ISBN}", json={"author": ""})
    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert seeded.get(f"{BOOKS_URL}/{GO_ISBN}").json() == go_book.model_dump()


def test_delete_book(seeded):
    response = seeded.delete(f"{BOOKS_URL}/{GO_ISBN}")
    assert response.status_code == 200
    assert response.content == b""

    assert seeded.get(f"{BOOKS_URL}/{GO_ISBN}").status_code == 404
    assert seeded.delete(f"{BOOKS_URL}/{GO_ISBN}").status_code == 200


def test_cors_preflight(client):
    response = client.options(
        BOOKS_URL,
        headers={"Origin": "http://example.com", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_unknown_route(client):
    response = client.get(f"{settings.api_prefix}/authors")
    assert response.status_code == 404
    assert response.json()["kind"] == "http_error"



def test_add_unserializable_book(client):
    # JSON с одиночным суррогатом разбирается, но не сохраняется
    response = client.post(
        BOOKS_URL,
        content=b'{"isbn": "978-1", "title": "\\ud800", "author": "a", "price": 1}',
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 500
    assert response.json()["kind"] == "storage"
    assert client.get(BOOKS_URL).json() == []


def test_bare_options_answered(client):
    response = client.options(f"{BOOKS_URL}/{GO_ISBN}")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "*"


@pytest.mark.anyio
async def test_throttle_rejects_excess_requests(monkeypatch):
    monkeypatch.setattr(settings, "throttle_limit", 1)
    throttled_app = create_app()

    entered = asyncio.Event()
    release = asyncio.Event()

    class BlockingBookstore(MemoryBookstore):
        async def list(self):
            entered.set()
            await release.wait()
            return await super().list()

    store = BlockingBookstore()
    throttled_app.dependency_overrides[get_bookstore] = lambda: store

    transport = httpx.ASGITransport(app=throttled_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        first = asyncio.create_task(client.get(BOOKS_URL))
        await entered.wait()

        response = await client.get(BOOKS_URL)
        assert response.status_code == 429
        assert response.json()["kind"] == "throttled"

        # Вне API лимит не действует
        assert (await client.get("/docs")).status_code == 200

        release.set()
        response = await first
        assert response.status_code == 200
        assert response.json() == []

        assert (await client.get(BOOKS_URL)).status_code == 200
