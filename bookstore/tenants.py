import asyncio
import hashlib
from collections import OrderedDict
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator, Awaitable, Callable, List

from fastapi import Request

from bookstore.config import settings
from bookstore.crud.book import open_bookstore
from bookstore.errors import BookstoreError
from bookstore.interface.book import BaseBookstore
from bookstore.routes.errors import ApiError, api_error
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)

MISSING_TENANT_MESSAGE = (
    "Hey! Looks like you're missing the {header} header. Please add it to "
    "your request so we know who you are!"
)

Opener = Callable[[Path], Awaitable[BaseBookstore]]


def tenant_dir_name(identity: str) -> str:
    """
    Имя каталога хранилища для арендатора.

    Хешируется полная строка идентичности, поэтому разные имена любой
    длины не совпадают и результат безопасен как имя файла.
    """
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()


class _OpenStore:
    """Открытое хранилище и число запросов, которые его сейчас используют."""

    def __init__(self, name: str, store: BaseBookstore) -> None:
        self.name = name
        self.store = store
        self.users = 0


class TenantStores:
    """
    Реестр открытых хранилищ арендаторов.

    Открыто не более max_open хранилищ. При переполнении вытесняется
    давно не использованное; если им еще пользуются запросы, оно
    закрывается после завершения последнего из них.
    """

    def __init__(self, root: str | Path, opener: Opener = open_bookstore, max_open: int = 64) -> None:
        """
        Args:
            root: Корневой каталог хранилищ арендаторов
            opener: Функция открытия хранилища по каталогу
            max_open: Сколько хранилищ держать открытыми одновременно
        """
        if max_open < 1:
            raise ValueError(f"max_open must be positive, got {max_open}")
        self.root: Path = Path(root)
        self.max_open = max_open
        self._opener: Opener = opener
        self._stores: "OrderedDict[str, _OpenStore]" = OrderedDict()
        # Вытесненные, но еще занятые запросами
        self._draining: List[_OpenStore] = []
        # Защищает только реестр, не операции с книгами
        self._lock = asyncio.Lock()
        logger.info(f"Инициализация TenantStores в {self.root}, не более {max_open} открытых")

    def __len__(self) -> int:
        return len(self._stores) + len(self._draining)

    @asynccontextmanager
    async def lease(self, identity: str) -> AsyncIterator[BaseBookstore]:
        """
        Получить хранилище арендатора на время запроса.

        Хранилище открывается при первом обращении и остается открытым
        для следующих запросов, пока его не вытеснят.

        Raises:
            StorageError: Если хранилище не удалось открыть
        """
        entry = await self._acquire(identity)
        try:
            yield entry.store
        finally:
            await self._release(entry)

    async def _acquire(self, identity: str) -> _OpenStore:
        name = tenant_dir_name(identity)
        evicted: List[_OpenStore] = []
        async with self._lock:
            entry = self._stores.get(name)
            if entry is None:
                logger.info(f"Открытие хранилища арендатора {name}")
                entry = _OpenStore(name, await self._opener(self.root / name))
                self._stores[name] = entry
                evicted = self._evict()
            else:
                self._stores.move_to_end(name)
            entry.users += 1

        for old in evicted:
            await self._close(old)
        return entry

    def _evict(self) -> List[_OpenStore]:
        """Убрать лишние хранилища из реестра; вернуть те, что можно закрыть сразу."""
        idle = []
        while len(self._stores) > self.max_open:
            _, old = self._stores.popitem(last=False)
            if old.users:
                logger.debug(f"Хранилище {old.name} вытеснено, ожидает {old.users} запросов")
                self._draining.append(old)
            else:
                idle.append(old)
        return idle

    async def _release(self, entry: _OpenStore) -> None:
        async with self._lock:
            entry.users -= 1
            if entry.users or entry not in self._draining:
                return
            self._draining.remove(entry)
        await self._close(entry)

    async def _close(self, entry: _OpenStore) -> None:
        logger.info(f"Закрытие хранилища арендатора {entry.name}")
        await entry.store.close()

    async def close(self) -> None:
        async with self._lock:
            entries = list(self._stores.values()) + self._draining
            self._stores.clear()
            self._draining = []
        for entry in entries:
            await entry.store.close()
        logger.info(f"Закрыто хранилищ: {len(entries)}")


async def get_bookstore(request: Request) -> AsyncGenerator[BaseBookstore, None]:
    """
    Зависимость FastAPI: хранилище арендатора из заголовка запроса.

    Yields:
        BaseBookstore: Хранилище вызывающего

    Raises:
        ApiError: Нет заголовка арендатора или хранилище не открылось
    """
    identity = request.headers.get(settings.tenant_header, "")
    if not identity:
        raise ApiError(
            400, "missing_tenant", MISSING_TENANT_MESSAGE.format(header=settings.tenant_header)
        )

    stores: TenantStores = request.app.state.tenant_stores
    async with AsyncExitStack() as stack:
        try:
            store = await stack.enter_async_context(stores.lease(identity))
        except BookstoreError as e:
            raise api_error(e) from e

        yield store
    logger.debug(f"Запрос арендатора {tenant_dir_name(identity)[:12]} завершен")
