from fastapi import APIRouter
from abc import ABC, abstractmethod
from typing import List

from bookstore.schemas.book import Book, PartialBook, UpdateBook
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)


class BaseBookRouter(ABC):
    """Абстрактный базовый класс для всех книжных роутеров"""

    def __init__(self) -> None:
        """Инициализация роутера с настройкой маршрутов"""
        self.router: APIRouter = APIRouter()
        logger.info(f"Инициализация {self.__class__.__name__}")
        self._setup_routes()
        logger.debug("Настройка маршрутов завершена")

    @abstractmethod
    def _setup_routes(self) -> None:
        """Настройка маршрутов API"""

    @abstractmethod
    async def read_books(self, *args, **kwargs) -> List[PartialBook]:
        """
        Получить список книг

        Returns:
            List[PartialBook]: Книги в порядке ISBN

        Raises:
            HTTPException: В случае ошибки хранилища
        """

    @abstractmethod
    async def create_book(self, *args, **kwargs) -> None:
        """
        Добавить книгу

        Raises:
            HTTPException: Невалидная книга, дубликат ISBN или ошибка хранилища
        """

    @abstractmethod
    async def read_book(self, *args, **kwargs) -> Book:
        """
        Получить книгу по ISBN

        Returns:
            Book: Найденная книга

        Raises:
            HTTPException: Невалидный ISBN или книга не найдена
        """

    @abstractmethod
    async def update_book(self, *args, **kwargs) -> Book:
        """
        Частично обновить книгу

        Returns:
            Book: Книга после обновления, прочитанная заново из хранилища

        Raises:
            HTTPException: Невалидный ISBN или книга не найдена
        """

    @abstractmethod
    async def delete_book(self, *args, **kwargs) -> None:
        """
        Удалить книгу

        Raises:
            HTTPException: Невалидный ISBN
        """


class BaseBookstore(ABC):
    """
    Абстрактное хранилище книг.

    Реализация должна быть безопасна для конкурентного использования
    без внешних блокировок: атомарность операций обеспечивают транзакции
    движка хранения.
    """

    def __init__(self) -> None:
        logger.info(f"Инициализация {self.__class__.__name__}")

    @abstractmethod
    async def get(self, isbn: str) -> Book:
        """
        Получить книгу по ISBN

        Args:
            isbn: ISBN книги

        Returns:
            Book: Найденная книга

        Raises:
            BookNotFoundError: Если книги нет
            StorageError: В случае ошибки хранилища или поврежденной записи
        """

    @abstractmethod
    async def list(self) -> List[PartialBook]:
        """
        Получить все книги в порядке возрастания ISBN

        Каждый вызов заново просматривает все записи. Запись, завершившаяся
        во время просмотра, может не попасть в результат.

        Returns:
            List[PartialBook]: Книги без необязательных полей

        Raises:
            StorageError: В случае ошибки хранилища
        """

    @abstractmethod
    async def add(self, book: Book) -> None:
        """
        Добавить новую книгу

        Проверка существования и запись выполняются в одной транзакции.

        Args:
            book: Добавляемая книга

        Raises:
            BookValidationError: Если книга невалидна
            BookAlreadyExistsError: Если ISBN уже занят
            StorageError: В случае ошибки хранилища
        """

    @abstractmethod
    async def update(self, isbn: str, patch: UpdateBook) -> None:
        """
        Применить патч к существующей книге

        Чтение, слияние и запись выполняются в одной транзакции.

        Args:
            isbn: ISBN книги
            patch: Частичное обновление

        Raises:
            BookNotFoundError: Если книги нет
            BookValidationError: Если результат слияния невалиден
            StorageError: В случае ошибки хранилища
        """

    @abstractmethod
    async def delete(self, isbn: str) -> None:
        """
        Удалить книгу. Удаление отсутствующей книги не является ошибкой.

        Args:
            isbn: ISBN книги

        Raises:
            StorageError: В случае ошибки хранилища
        """

    @abstractmethod
    async def close(self) -> None:
        """Освободить ресурсы движка хранения"""
