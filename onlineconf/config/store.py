"""配置存储

持有最近一次发布的快照（以及可选的绑定结构体），读操作只在锁内取引用，
从不触发文件读取或解析。快照整体替换，从不原地修改。
"""

import threading
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from ..models.snapshot import EMPTY_SNAPSHOT, Snapshot

ValueParser = Callable[[str], Any]


class ConfigStore:
    """线程安全的配置快照存储

    写者只有重载引擎和一次性的初始化过程，读者可以是任意线程。
    """

    def __init__(self, prefixes: Sequence[str] | None = None):
        self._lock = threading.Lock()
        self._snapshot: Snapshot = EMPTY_SNAPSHOT
        self._bound: Any = None
        self._prefixes: tuple[str, ...] = tuple(prefixes or ())
        self._parsers: dict[str, ValueParser] = {}

    @property
    def prefixes(self) -> tuple[str, ...]:
        return self._prefixes

    def add_parser(self, key: str, parser: ValueParser) -> None:
        """
        注册某个 key 的值转换函数，下一次发布时生效

        Args:
            key: 去掉前缀之后的 key
            parser: 把原始字符串转换成类型化值的函数
        """
        with self._lock:
            self._parsers[key] = parser

    def prepare(self, snapshot: Snapshot) -> Snapshot:
        """
        对解析结果应用前缀过滤和转换函数，返回待发布的新快照

        有前缀时只保留匹配的 key 并去掉前缀；多个前缀按顺序处理，
        去掉前缀后冲突的 key 以后面的前缀为准。
        """
        with self._lock:
            parsers = dict(self._parsers)

        if self._prefixes:
            data: dict[str, Any] = {}
            for prefix in self._prefixes:
                for key, value in snapshot.data.items():
                    if key.startswith(prefix):
                        data[key[len(prefix):]] = value
        else:
            data = dict(snapshot.data)

        for key, parser in parsers.items():
            value = data.get(key)
            if not isinstance(value, str):
                continue
            try:
                data[key] = parser(value)
            except Exception as e:
                # 转换函数由调用方注册，任何异常都不能中断发布
                logger.warning(f"配置值转换失败，保留原始字符串 - key: {key}, value: {value!r}, error: {e}")

        return Snapshot(name=snapshot.name, version=snapshot.version, data=data)

    def publish(self, snapshot: Snapshot, bound: Any = None) -> None:
        """原子地替换当前快照（以及对应的绑定结构体）"""
        with self._lock:
            self._snapshot = snapshot
            self._bound = bound

    def current(self) -> Snapshot:
        """返回当前快照"""
        with self._lock:
            return self._snapshot

    def current_version(self) -> str:
        """返回当前快照的版本"""
        with self._lock:
            return self._snapshot.version

    def current_bound(self) -> Any:
        """返回与当前快照一起发布的绑定结构体，没有时为None"""
        with self._lock:
            return self._bound
