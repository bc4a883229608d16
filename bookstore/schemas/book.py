import re
from typing import Optional, Set, Tuple
from pydantic import BaseModel, ConfigDict

from bookstore.errors import BookValidationError

ISBN_PATTERN = re.compile(r"\d{3}-\d+", re.ASCII)
PUBLISHED_DATE_PATTERN = re.compile(r"\s*([+-]?\d+)-([+-]?\d+)-([+-]?\d+)", re.ASCII)


class Cents(int):
    """Цена в центах USD. Строковое представление: $35.99"""

    def __str__(self) -> str:
        sign = "-" if self < 0 else ""
        dollars, cents = divmod(abs(int(self)), 100)
        return f"{sign}${dollars}.{cents:02d}"


def validate_isbn(isbn: str) -> str:
    """
    Проверить формат ISBN (три цифры, дефис, цифры).

    Контрольная сумма ISBN-13 не проверяется.

    Args:
        isbn: Проверяемая строка

    Returns:
        str: Тот же ISBN

    Raises:
        BookValidationError: Если строка не соответствует формату
    """
    if not isinstance(isbn, str) or ISBN_PATTERN.fullmatch(isbn) is None:
        raise BookValidationError(f"invalid ISBN: {isbn}")
    return isbn


def parse_published_date(value: str) -> Tuple[int, int, int]:
    """
    Разобрать дату публикации YYYY-MM-DD на компоненты.

    Корректность даты по календарю не проверяется (месяц 13 допустим).

    Args:
        value: Дата публикации

    Returns:
        Tuple[int, int, int]: Год, месяц, день

    Raises:
        BookValidationError: Если строка не раскладывается на три числа
    """
    match = PUBLISHED_DATE_PATTERN.match(value)
    if match is None:
        raise BookValidationError(f"invalid published date: {value}")
    year, month, day = (int(part) for part in match.groups())
    return year, month, day


class PartialBook(BaseModel):
    isbn: str
    title: str
    author: str
    price: int

    @property
    def display_price(self) -> str:
        return str(Cents(self.price))

    def ensure_valid(self) -> None:
        """
        Проверить обязательные поля книги.

        Raises:
            BookValidationError: Невалидный ISBN, пустое название или автор,
                отрицательная цена
        """
        validate_isbn(self.isbn)
        if not self.title:
            raise BookValidationError("title is required")
        if not self.author:
            raise BookValidationError("author is required")
        if self.price < 0:
            raise BookValidationError("price must be positive")


class Book(PartialBook):
    rating: Optional[float] = None
    summary: Optional[str] = None
    language: Optional[str] = None
    published_date: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "isbn": "978-0134190440",
                "title": "The Go Programming Language (1st Edition)",
                "author": "Alan A. A. Donovan, Brian W. Kernighan",
                "price": 3599,
                "rating": 4.5,
                "summary": None,
                "language": "en",
                "published_date": "2015-10-26",
            }
        }
    )

    def ensure_valid(self) -> None:
        super().ensure_valid()
        if self.published_date is not None:
            parse_published_date(self.published_date)

    def to_partial(self) -> PartialBook:
        return PartialBook.model_validate(self.model_dump(include=set(PartialBook.model_fields)))


# Поля, которые можно явно очистить через null
NULLABLE_FIELDS = frozenset(Book.model_fields) - frozenset(PartialBook.model_fields)


class UpdateBook(BaseModel):
    """
    Частичное обновление книги.

    Отсутствующее поле не меняется. Для title, author, price значение null
    тоже означает "без изменений". Для rating, summary, language,
    published_date явный null очищает поле.
    """

    title: Optional[str] = None
    author: Optional[str] = None
    price: Optional[int] = None
    rating: Optional[float] = None
    summary: Optional[str] = None
    language: Optional[str] = None
    published_date: Optional[str] = None

    def changed_fields(self) -> Set[str]:
        """Поля, которые будут перезаписаны при применении патча."""
        changes = self.model_dump(exclude_unset=True)
        return {
            name for name, value in changes.items()
            if name in NULLABLE_FIELDS or value is not None
        }

    def apply(self, book: Book) -> Book:
        """
        Применить патч к книге.

        Args:
            book: Текущая версия книги

        Returns:
            Book: Новая объединенная версия, исходная книга не изменяется
        """
        changes = self.model_dump(exclude_unset=True)
        merged = book.model_dump()
        for name in self.changed_fields():
            merged[name] = changes[name]
        return Book.model_validate(merged)


class ErrorResponse(BaseModel):
    kind: str
    message: str
