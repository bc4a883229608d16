import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str):
    return field(default_factory=lambda: os.getenv(name, default))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.getenv(name, str(default))))


def _env_float(name: str, default: float):
    return field(default_factory=lambda: float(os.getenv(name, str(default))))


@dataclass
class Settings:
    # Сервер
    host: str = _env("HOST", "0.0.0.0")
    port: int = _env_int("PORT", 8080)
    api_prefix: str = _env("API_PREFIX", "/api")
    static_dir: str = _env("STATIC_DIR", "static")
    throttle_limit: int = _env_int("THROTTLE_LIMIT", 100)

    # Хранилище
    db_path: str = _env("DB_PATH", "data")
    tenant_header: str = _env("TENANT_HEADER", "X-ACM-Name")
    sqlite_busy_timeout: float = _env_float("SQLITE_BUSY_TIMEOUT", 30.0)
    max_open_stores: int = _env_int("MAX_OPEN_STORES", 64)

    # Логирование
    log_level: str = _env("LOG_LEVEL", "INFO")
    log_dir: str = _env("LOG_DIR", "logs")


settings = Settings()
