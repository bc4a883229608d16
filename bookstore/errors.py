class BookstoreError(Exception):
    """Базовая ошибка хранилища книг."""

    kind: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


class BookValidationError(BookstoreError):
    """Невалидные данные книги: ISBN, пустое название/автор, отрицательная цена."""

    kind = "validation"


class BookNotFoundError(BookstoreError):
    """Книга с указанным ISBN отсутствует в хранилище."""

    kind = "not_found"

    def __init__(self, isbn: str) -> None:
        super().__init__(f"book not found: {isbn}")
        self.isbn: str = isbn


class BookAlreadyExistsError(BookstoreError):
    """Книга с указанным ISBN уже существует."""

    kind = "already_exists"

    def __init__(self, isbn: str) -> None:
        super().__init__(f"book already exists: {isbn}")
        self.isbn: str = isbn


class StorageError(BookstoreError):
    """Ошибка движка хранения: ввод-вывод, поврежденная запись, сериализация."""

    kind = "storage"
