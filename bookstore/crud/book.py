from pathlib import Path
from typing import List, Optional
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from bookstore.database import WRITE_TRANSACTION, create_engine, create_tables
from bookstore.errors import BookAlreadyExistsError, BookNotFoundError, StorageError
from bookstore.interface.book import BaseBookstore
from bookstore.models.book import (
    BOOKS_NAMESPACE,
    Record,
    book_key,
    decode_record,
    encode_record,
    prefix_range,
)
from bookstore.schemas.book import Book, PartialBook, UpdateBook
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)

# Файл хранилища внутри каталога арендатора
STORE_FILE = "v1.db"


async def _read(conn: AsyncConnection, key: bytes) -> Optional[bytes]:
    result = await conn.execute(select(Record.value).where(Record.key == key))
    return result.scalar_one_or_none()


class SqliteBookstore(BaseBookstore):
    """Хранилище книг поверх таблицы ключ-значение в SQLite."""

    def __init__(self, engine: AsyncEngine) -> None:
        """
        Инициализация хранилища.

        Args:
            engine: Асинхронный движок SQLite, созданный create_engine
        """
        super().__init__()
        self.engine: AsyncEngine = engine
        self._writer: AsyncEngine = engine.execution_options(**{WRITE_TRANSACTION: True})

    async def get(self, isbn: str) -> Book:
        key = book_key(isbn)
        try:
            logger.debug(f"Извлечение книги с ISBN: {isbn}")
            async with self.engine.begin() as conn:
                value = await _read(conn, key)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка извлечения книги {isbn}: {str(e)}", exc_info=True)
            raise StorageError(f"reading book {isbn}: {e}") from e

        if value is None:
            logger.debug(f"Книга не найдена с ISBN: {isbn}")
            raise BookNotFoundError(isbn)
        return decode_record(Book, key, value)

    async def list(self) -> List[PartialBook]:
        start, end = prefix_range(BOOKS_NAMESPACE)
        try:
            logger.debug("Извлечение всех книг")
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    select(Record.key, Record.value)
                    .where(Record.key >= start, Record.key < end)
                    .order_by(Record.key)
                )
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Ошибка извлечения книг: {str(e)}", exc_info=True)
            raise StorageError(f"listing books: {e}") from e

        books = [decode_record(PartialBook, key, value) for key, value in rows]
        logger.debug(f"Найдено {len(books)} книг")
        return books

    async def add(self, book: Book) -> None:
        book.ensure_valid()
        key = book_key(book.isbn)
        value = encode_record(book)
        try:
            logger.info(f"Создание новой книги: {book.isbn}")
            async with self._writer.begin() as conn:
                if await _read(conn, key) is not None:
                    logger.warning(f"Книга с ISBN {book.isbn} уже существует")
                    raise BookAlreadyExistsError(book.isbn)
                await conn.execute(insert(Record).values(key=key, value=value))
            logger.info(f"Создана книга с ISBN: {book.isbn}")
        except IntegrityError as e:
            logger.warning(f"Книга с ISBN {book.isbn} уже существует")
            raise BookAlreadyExistsError(book.isbn) from e
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания книги {book.isbn}: {str(e)}", exc_info=True)
            raise StorageError(f"adding book {book.isbn}: {e}") from e

    async def update(self, isbn: str, patch: UpdateBook) -> None:
        key = book_key(isbn)
        try:
            logger.info(f"Обновление книги с ISBN: {isbn}, поля: {sorted(patch.changed_fields())}")
            async with self._writer.begin() as conn:
                value = await _read(conn, key)
                if value is None:
                    logger.warning(f"Книга для обновления не найдена, ISBN: {isbn}")
                    raise BookNotFoundError(isbn)

                merged = patch.apply(decode_record(Book, key, value))
                merged.ensure_valid()
                await conn.execute(
                    update(Record).where(Record.key == key).values(value=encode_record(merged))
                )
            logger.info(f"Данные книги с ISBN {isbn} обновлены")
        except SQLAlchemyError as e:
            logger.error(f"Ошибка обновления книги {isbn}: {str(e)}", exc_info=True)
            raise StorageError(f"updating book {isbn}: {e}") from e

    async def delete(self, isbn: str) -> None:
        try:
            logger.info(f"Удаление книги с ISBN: {isbn}")
            async with self._writer.begin() as conn:
                result = await conn.execute(delete(Record).where(Record.key == book_key(isbn)))
            if result.rowcount:
                logger.info(f"Книга с ISBN {isbn} удалена")
            else:
                logger.debug(f"Книга с ISBN {isbn} отсутствовала")
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления книги {isbn}: {str(e)}", exc_info=True)
            raise StorageError(f"deleting book {isbn}: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Хранилище закрыто")


async def open_bookstore(path: str | Path) -> SqliteBookstore:
    """
    Открыть (или создать) хранилище книг в каталоге.

    Args:
        path: Каталог хранилища, создается при необходимости

    Returns:
        SqliteBookstore: Готовое к работе хранилище

    Raises:
        StorageError: Если не удалось создать каталог или базу данных
    """
    root = Path(path)
    try:
        root.mkdir(parents=True, exist_ok=True)
        engine = create_engine(root / STORE_FILE)
        await create_tables(engine)
    except (OSError, SQLAlchemyError) as e:
        logger.critical(f"Не удалось открыть хранилище {root}: {str(e)}", exc_info=True)
        raise StorageError(f"opening database {root}: {e}") from e

    logger.info(f"Хранилище открыто: {root / STORE_FILE}")
    return SqliteBookstore(engine)
