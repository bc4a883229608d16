from fastapi import HTTPException

from bookstore.errors import (
    BookAlreadyExistsError,
    BookNotFoundError,
    BookValidationError,
    BookstoreError,
    StorageError,
)


class ApiError(HTTPException):
    """HTTP-ошибка с машинно-различимым видом ошибки."""

    def __init__(self, status_code: int, kind: str, message: str) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.kind: str = kind


# Статусы ответов для ошибок хранилища
ERROR_STATUS = {
    BookValidationError: 400,
    BookNotFoundError: 404,
    BookAlreadyExistsError: 409,
    StorageError: 500,
}


def api_error(error: Exception) -> ApiError:
    """
    Преобразовать ошибку хранилища в HTTP-ошибку.

    Args:
        error: Исключение из слоя хранения

    Returns:
        ApiError: Ошибка с соответствующим статусом, неизвестные ошибки дают 500
    """
    if isinstance(error, BookstoreError):
        for error_type, status_code in ERROR_STATUS.items():
            if isinstance(error, error_type):
                return ApiError(status_code, error.kind, error.message)
    return ApiError(500, StorageError.kind, "internal storage error")
