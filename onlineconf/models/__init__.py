"""
数据模型模块

- Snapshot: 不可变配置快照
- ReloadEvent / ReloadState: 重载引擎的状态与结果
- 错误类型层次
"""

from .errors import (
    BindingError,
    MissingKeyError,
    OnlineConfError,
    ParseError,
    WatchRuntimeError,
    WatchSetupError,
)
from .snapshot import EMPTY_SNAPSHOT, ReloadEvent, ReloadState, Snapshot, Value

__all__ = [
    "Snapshot",
    "EMPTY_SNAPSHOT",
    "Value",
    "ReloadEvent",
    "ReloadState",
    "OnlineConfError",
    "ParseError",
    "WatchSetupError",
    "WatchRuntimeError",
    "BindingError",
    "MissingKeyError",
]
