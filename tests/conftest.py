import os
import tempfile

# Логи тестов не должны попадать в рабочий каталог
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="bookstore-logs-"))

import pytest

from bookstore.schemas.book import Book


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def go_book():
    return Book(
        isbn="978-0134190440",
        title="The Go Programming Language (1st Edition)",
        author="Alan A. A. Donovan, Brian W. Kernighan",
        price=3599,  # $35.99
    )


@pytest.fixture
def manifesto():
    return Book(
        isbn="978-1453704424",
        title="The Communist Manifesto",
        author="Karl Marx, Friedrich Engels",
        price=0,
        rating=4.5,
        summary="A political pamphlet.",
        language="en",
        published_date="1848-02-21",
    )
