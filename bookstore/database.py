from pathlib import Path
from typing import Any, Optional
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import declarative_base

from bookstore.config import settings
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)

Base: Any = declarative_base()

# Опция выполнения: транзакция начинается с BEGIN IMMEDIATE
WRITE_TRANSACTION = "bookstore_write"


def create_engine(path: str | Path, busy_timeout: Optional[float] = None) -> AsyncEngine:
    """
    Создать асинхронный движок SQLite для файла хранилища.

    Каждая запись синхронизируется на диск до возврата (synchronous=FULL).
    Транзакции записи берут блокировку до первого чтения (BEGIN IMMEDIATE),
    транзакции чтения работают со снимком WAL.

    Args:
        path: Путь к файлу базы данных
        busy_timeout: Сколько секунд ждать блокировку записи

    Returns:
        AsyncEngine: Движок SQLAlchemy
    """
    if busy_timeout is None:
        busy_timeout = settings.sqlite_busy_timeout

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        connect_args={"timeout": busy_timeout},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        # Отключаем неявные транзакции драйвера, BEGIN выдается в _on_begin
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=FULL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        if conn.get_execution_options().get(WRITE_TRANSACTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    logger.debug(f"Движок SQLite создан для {path}")
    return engine


async def create_tables(engine: AsyncEngine) -> None:
    """Создает таблицы хранилища, если их нет."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Таблицы базы данных созданы")
