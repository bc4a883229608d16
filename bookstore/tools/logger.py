import logging
import logging.handlers
from pathlib import Path

from bookstore.config import settings

LOG_FILE = "app.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str) -> logging.Logger:
    """
    Настраивает и возвращает логгер с заданным именем.

    Повторный вызов для того же имени не добавляет новых обработчиков.

    Args:
        name (str): Имя логгера (обычно __name__)

    Returns:
        logging.Logger: Сконфигурированный логгер
    """
    logger = logging.getLogger(name)
    logger.setLevel(settings.log_level.upper())
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    # Файл с ротацией по 5 МБ
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / LOG_FILE,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    # Не дублировать записи через корневой логгер
    logger.propagate = False

    return logger
