import sys
from pathlib import Path
from typing import Optional
from loguru import logger
from persistence.config import settings

class LogConfig:
    """Global logging configuration using Loguru."""
    @classmethod
    def setup_logging(cls, level: Optional[str] = None):
        level = level or settings.LOG_LEVEL
        logger.remove()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
            ),
            level=level,
        )

        if settings.LOG_TO_FILE:
            log_dir = Path(settings.LOG_DIR)
            log_dir.mkdir(parents=True, exist_ok=True)

            logger.add(
                log_dir / "persistence_{time:YYYY-MM-DD}.log",
                rotation="00:00",
                retention="30 days",
                compression="zip",
                enqueue=True,
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}",
                level="DEBUG",
            )

            logger.add(
                log_dir / "persistence_error_{time:YYYY-MM-DD}.log",
                level="ERROR",
                rotation="100 MB",
                enqueue=True,
            )

        logger.configure(extra={"trace_id": "system"})

def get_logger(name: str = None, trace_id: Optional[str] = None):
    """Get logger instance; trace_id falls back to the configured or contextualized one."""
    extra = {}
    if name:
        extra["name"] = name
    if trace_id:
        extra["trace_id"] = trace_id
    return logger.bind(**extra)
