from fastapi import Depends, Response
from typing import List

from bookstore.errors import BookstoreError
from bookstore.interface.book import BaseBookRouter, BaseBookstore
from bookstore.routes.errors import api_error
from bookstore.schemas import book as schema
from bookstore.tenants import get_bookstore
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": schema.ErrorResponse},
    404: {"model": schema.ErrorResponse},
    409: {"model": schema.ErrorResponse},
    500: {"model": schema.ErrorResponse},
}


class BookstoreRouter(BaseBookRouter):
    def __init__(self) -> None:
        super().__init__()
        logger.info("Инициализация BookstoreRouter")

    def _setup_routes(self) -> None:
        self.router.add_api_route("", self.read_books, methods=["GET"],
                                  response_model=List[schema.PartialBook], responses=ERROR_RESPONSES)
        self.router.add_api_route("", self.create_book, methods=["POST"],
                                  response_class=Response, responses=ERROR_RESPONSES)
        self.router.add_api_route("/{isbn}", self.read_book, methods=["GET"],
                                  response_model=schema.Book, responses=ERROR_RESPONSES)
        self.router.add_api_route("/{isbn}", self.update_book, methods=["PATCH"],
                                  response_model=schema.Book, responses=ERROR_RESPONSES)
        self.router.add_api_route("/{isbn}", self.delete_book, methods=["DELETE"],
                                  response_class=Response, responses=ERROR_RESPONSES)
        logger.debug("Пути хранилища книг определены")

    async def read_books(self, store: BaseBookstore = Depends(get_bookstore)) -> List[schema.PartialBook]:
        try:
            books = await store.list()
            logger.info(f"Извлечено {len(books)} книг")
            return books
        except BookstoreError as e:
            logger.error(f"Ошибка извлечения книг: {str(e)}")
            raise api_error(e) from e

    async def create_book(self, book: schema.Book, store: BaseBookstore = Depends(get_bookstore)) -> Response:
        try:
            logger.info(f"Создание книги: {book.isbn}")
            await store.add(book)
            return Response(status_code=200)
        except BookstoreError as e:
            logger.warning(f"Книга {book.isbn} не создана: {str(e)}")
            raise api_error(e) from e

    async def read_book(self, isbn: str, store: BaseBookstore = Depends(get_bookstore)) -> schema.Book:
        try:
            schema.validate_isbn(isbn)
            logger.info(f"Извлечение книги по ISBN: {isbn}")
            return await store.get(isbn)
        except BookstoreError as e:
            logger.warning(f"Книга {isbn} не получена: {str(e)}")
            raise api_error(e) from e

    async def update_book(self, isbn: str, book: schema.UpdateBook,
                          store: BaseBookstore = Depends(get_bookstore)) -> schema.Book:
        try:
            schema.validate_isbn(isbn)
            logger.info(f"Обновление книги по ISBN: {isbn}")
            await store.update(isbn, book)
        except BookstoreError as e:
            logger.warning(f"Книга {isbn} не обновлена: {str(e)}")
            raise api_error(e) from e

        # Возвращаем сохраненную версию, а не патч
        return await self.read_book(isbn, store)

    async def delete_book(self, isbn: str, store: BaseBookstore = Depends(get_bookstore)) -> Response:
        try:
            schema.validate_isbn(isbn)
            logger.info(f"Удаление книги по ISBN: {isbn}")
            await store.delete(isbn)
            return Response(status_code=200)
        except BookstoreError as e:
            logger.warning(f"Книга {isbn} не удалена: {str(e)}")
            raise api_error(e) from e


books_router = BookstoreRouter()
router = books_router.router
