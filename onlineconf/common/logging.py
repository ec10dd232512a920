"""Loguru日志配置"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[file]}</cyan> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[file]} | {name}:{line} | {message}"


def _ensure_file_extra(record) -> bool:
    record["extra"].setdefault("file", "---")
    return True


def configure_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """配置Loguru日志系统

    Args:
        level: 日志级别
        log_file: 可选的日志文件路径，为None时只输出到stderr
    """
    # 移除默认的handler
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        filter=_ensure_file_extra,
    )

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(log_path),
            format=FILE_FORMAT,
            level=level,
            rotation="10 MB",
            retention="1 day",
            encoding="utf-8",
            backtrace=True,
            diagnose=True,
            filter=_ensure_file_extra,
        )


def get_logger_for_file(path: str | Path | None = None):
    """获取绑定了配置文件路径的日志器实例

    Args:
        path: 配置文件路径，如果为None则使用默认值

    Returns:
        绑定了配置文件路径的logger实例
    """
    if path:
        return logger.bind(file=str(path))
    return logger.bind(file="---")
