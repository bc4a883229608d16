import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from bookstore.config import settings
from bookstore.routes import books
from bookstore.tenants import TenantStores
from bookstore.tools.logger import setup_logger

logger = setup_logger(__name__)

ALLOW_ALL_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Жизненный цикл приложения.

    Хранилища арендаторов открываются лениво и закрываются при остановке.
    """
    app.state.tenant_stores = TenantStores(settings.db_path, max_open=settings.max_open_stores)
    logger.info(f"Хранилища арендаторов в {settings.db_path}")
    try:
        yield
    finally:
        await app.state.tenant_stores.close()
        logger.info("Приложение остановлено")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Обработчик HTTP исключений.

    Args:
        request: Запрос, вызвавший исключение
        exc: Исключение HTTPException

    Returns:
        JSONResponse: Ответ с видом ошибки и сообщением
    """
    logger.error(f"HTTPException: {exc.detail} (status_code={exc.status_code})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": getattr(exc, "kind", "http_error"), "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Обработчик ошибок валидации запросов.

    Args:
        request: Запрос с невалидными данными
        exc: Исключение RequestValidationError

    Returns:
        JSONResponse: Ответ 400 с деталями ошибок валидации
    """
    logger.error(f"Ошибка валидации: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "kind": "validation",
            "message": "Validation error",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Обработчик всех неожиданных исключений.

    Args:
        request: Запрос, вызвавший исключение
        exc: Перехваченное исключение

    Returns:
        JSONResponse: Ответ с сообщением об ошибке
    """
    logger.error(f"Неожиданная ошибка: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"kind": "internal", "message": "Internal server error"},
    )


def create_app() -> FastAPI:
    """Собрать приложение: обработчики ошибок, middleware, маршруты."""
    app = FastAPI(title="Bookstore API", lifespan=lifespan)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    throttle = asyncio.Semaphore(settings.throttle_limit)

    @app.middleware("http")
    async def throttle_requests(request: Request, call_next):
        # Ограничение действует только на API, статика не считается
        if not request.url.path.startswith(settings.api_prefix):
            return await call_next(request)
        if throttle.locked():
            logger.warning(f"Превышен лимит запросов: {request.method} {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"kind": "throttled", "message": "Server capacity exceeded."},
            )
        async with throttle:
            return await call_next(request)

    @app.middleware("http")
    async def answer_options(request: Request, call_next):
        # Любой OPTIONS, не только CORS preflight
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=ALLOW_ALL_CORS_HEADERS)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.1f} ms)"
        )
        return response

    app.include_router(books.router, prefix=f"{settings.api_prefix}/books", tags=["books"])

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info(f"Статические файлы из {static_dir}")

    return app


app = create_app()


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
