import asyncio
from typing import Dict, List

from bookstore.errors import BookAlreadyExistsError, BookNotFoundError
from bookstore.interface.book import BaseBookstore
from bookstore.models.book import (
    BOOKS_NAMESPACE,
    book_key,
    decode_record,
    encode_record,
    prefix_range,
)
from bookstore.schemas.book import Book, PartialBook, UpdateBook
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)


class MemoryBookstore(BaseBookstore):
    """
    Хранилище книг в памяти процесса.

    Записи хранятся сериализованными под теми же ключами, что и в SQLite.
    Каждая операция выполняется целиком под одной блокировкой, поэтому
    проверка существования и запись атомарны так же, как транзакции SQLite.
    """

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[bytes, bytes] = {}
        self._lock = asyncio.Lock()

    async def get(self, isbn: str) -> Book:
        key = book_key(isbn)
        async with self._lock:
            value = self._data.get(key)
        if value is None:
            logger.debug(f"Книга не найдена с ISBN: {isbn}")
            raise BookNotFoundError(isbn)
        return decode_record(Book, key, value)

    async def list(self) -> List[PartialBook]:
        start, end = prefix_range(BOOKS_NAMESPACE)
        async with self._lock:
            items = sorted(
                (key, value) for key, value in self._data.items() if start <= key < end
            )
        return [decode_record(PartialBook, key, value) for key, value in items]

    async def add(self, book: Book) -> None:
        book.ensure_valid()
        key = book_key(book.isbn)
        async with self._lock:
            if key in self._data:
                logger.warning(f"Книга с ISBN {book.isbn} уже существует")
                raise BookAlreadyExistsError(book.isbn)
            # Переключение задач между проверкой и записью
            await asyncio.sleep(0)
            self._data[key] = encode_record(book)
        logger.info(f"Создана книга с ISBN: {book.isbn}")

    async def update(self, isbn: str, patch: UpdateBook) -> None:
        key = book_key(isbn)
        async with self._lock:
            value = self._data.get(key)
            if value is None:
                logger.warning(f"Книга для обновления не найдена, ISBN: {isbn}")
                raise BookNotFoundError(isbn)
            merged = patch.apply(decode_record(Book, key, value))
            merged.ensure_valid()
            await asyncio.sleep(0)
            self._data[key] = encode_record(merged)
        logger.info(f"Данные книги с ISBN {isbn} обновлены")

    async def delete(self, isbn: str) -> None:
        async with self._lock:
            self._data.pop(book_key(isbn), None)
        logger.info(f"Книга с ISBN {isbn} удалена")

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()


def open_test_bookstore() -> MemoryBookstore:
    """Создать пустое хранилище в памяти для тестов."""
    return MemoryBookstore()
