"""
通用工具模块

主要功能:
- 日志配置和管理
- 时长字面量解析

使用示例:
    from onlineconf.common import configure_logging

    configure_logging("DEBUG")
"""

from .durations import parse_duration
from .logging import configure_logging, get_logger_for_file

__all__ = [
    "configure_logging",
    "get_logger_for_file",
    "parse_duration",
]
