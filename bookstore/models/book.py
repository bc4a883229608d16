from typing import Type, TypeVar
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError
from sqlalchemy import LargeBinary
from sqlalchemy.orm import Mapped, mapped_column
from ..database import Base
from ..errors import StorageError

ModelType = TypeVar('ModelType', bound=BaseModel)


class Record(Base):
    """Запись упорядоченного хранилища ключ-значение."""

    __tablename__ = "kv"

    key: Mapped[bytes] = mapped_column(LargeBinary, primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary)


BOOKS_NAMESPACE = b"books"
KEY_SEPARATOR = b"\x00"


def keys(*parts: str | bytes) -> bytes:
    """
    Собрать ключ из частей, разделенных нулевым байтом.

    Args:
        parts: Части ключа (пространство имен, идентификатор)

    Returns:
        bytes: Ключ хранилища
    """
    return KEY_SEPARATOR.join(
        part if isinstance(part, bytes) else str(part).encode("utf-8")
        for part in parts
    )


def book_key(isbn: str) -> bytes:
    return keys(BOOKS_NAMESPACE, isbn)


def prefix_range(prefix: bytes) -> tuple[bytes, bytes]:
    """Полуоткрытый диапазон [начало, конец) всех ключей с данным префиксом."""
    start = prefix + KEY_SEPARATOR
    return start, prefix + bytes([KEY_SEPARATOR[0] + 1])


def encode_record(obj: BaseModel) -> bytes:
    """
    Сериализовать модель в значение записи.

    Raises:
        StorageError: Если модель не сериализуется в UTF-8 JSON
    """
    try:
        return obj.model_dump_json().encode("utf-8")
    except (PydanticSerializationError, UnicodeEncodeError) as e:
        raise StorageError(f"cannot serialize record: {e}") from e


def decode_record(model: Type[ModelType], key: bytes, value: bytes) -> ModelType:
    """
    Десериализовать значение записи.

    Неизвестные ключи игнорируются, отсутствующие необязательные поля
    получают None, поэтому записи старого формата читаются без ошибок.

    Raises:
        StorageError: Если запись повреждена
    """
    try:
        return model.model_validate_json(value)
    except ValidationError as e:
        raise StorageError(f"corrupt record {key!r}: {e.error_count()} errors") from e
