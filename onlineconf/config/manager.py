"""配置实例管理

OnlineConf 把解析器、存储、重载引擎和结构体绑定组装在一起，由应用的组合根持有并显式传递。
另外提供一个可选的进程级单例，只初始化一次、关闭一次。

使用示例:
    conf = init(Options(file="/etc/app/app.conf"), schema=AppSettings)
    settings = conf.bound()
    ...
    conf.close()
"""

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import Context
from pathlib import Path
from typing import Any

from loguru import logger

from ..models.errors import BindingError, OnlineConfError
from ..models.snapshot import ReloadState, Snapshot
from .binder import bind, binding_schema
from .context import attach, pinned
from .parser import read_config
from .settings import Options
from .store import ConfigStore, ValueParser
from .watcher import ReloadCallback, ReloadEngine


class OnlineConf:
    """热重载配置

    Args:
        options: 初始化参数
        schema: 可选的绑定结构体类型（dataclass 或 pydantic 模型），
            每次发布快照时都会创建新实例并绑定
    """

    def __init__(self, options: Options, schema: type | None = None):
        if schema is not None:
            binding_schema(schema)

        self.options = options
        self.schema = schema
        self.store = ConfigStore(options.prefixes)
        self.engine = ReloadEngine(options, self.store, loader=self._load)

    def _load(self) -> tuple[Snapshot, Any]:
        snapshot = self.store.prepare(read_config(self.options.file))
        if self.schema is None:
            return snapshot, None
        try:
            dest = self.schema()
        except (TypeError, ValueError) as e:
            raise BindingError(f"cannot create {self.schema.__name__}: {e}") from e
        return snapshot, bind(snapshot, dest)

    def start(self) -> "OnlineConf":
        """首次同步加载并开始监听"""
        self.engine.start()
        return self

    def close(self) -> None:
        self.engine.close()

    @property
    def state(self) -> ReloadState:
        return self.engine.state

    def add_parser(self, key: str, parser: ValueParser) -> None:
        self.store.add_parser(key, parser)

    def add_reload_callback(self, callback: ReloadCallback) -> None:
        self.engine.add_reload_callback(callback)

    def current(self) -> Snapshot:
        """当前快照"""
        return self.store.current()

    def version(self) -> str:
        """当前快照版本"""
        return self.store.current_version()

    def config(self):
        """当前键值数据（只读）"""
        return self.store.current().data

    def bound(self) -> Any:
        """与当前快照一起发布的绑定结构体，没有配置 schema 时为None"""
        return self.store.current_bound()

    def context(self, ctx: Context | None = None, use_bound: bool = False) -> Context:
        """
        返回固定了当前配置的新上下文

        Args:
            ctx: 基础上下文，为None时使用当前上下文
            use_bound: 为True时固定绑定结构体的副本，否则固定快照
        """
        value = copy.copy(self.bound()) if use_bound else self.current()
        return attach(value, ctx)

    @contextmanager
    def pinned(self, use_bound: bool = False) -> Iterator[Any]:
        """在当前上下文中固定当前配置"""
        value = copy.copy(self.bound()) if use_bound else self.current()
        with pinned(value) as v:
            yield v

    def __enter__(self):
        """上下文管理器入口"""
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """上下文管理器退出"""
        self.close()


def _as_options(options: Options | str | Path, **kwargs: Any) -> Options:
    if isinstance(options, Options):
        if not kwargs:
            return options
        return Options.model_validate({**options.model_dump(), **kwargs})
    return Options(file=options, **kwargs)


def init(options: Options | str | Path, schema: type | None = None, **kwargs: Any) -> OnlineConf:
    """
    创建并启动配置实例

    Args:
        options: 初始化参数，或者配置文件路径
        schema: 可选的绑定结构体类型
        **kwargs: 覆盖 Options 中的字段

    Raises:
        OnlineConfError: 首次加载失败或无法创建监听
    """
    return OnlineConf(_as_options(options, **kwargs), schema=schema).start()


def must_init(options: Options | str | Path, schema: type | None = None, **kwargs: Any) -> OnlineConf:
    """与 init 相同，但失败时记录日志并退出进程"""
    try:
        return init(options, schema=schema, **kwargs)
    except OnlineConfError as e:
        logger.critical(f"配置初始化失败: {e}")
        raise SystemExit(f"failed to init onlineconf: {e}") from e


# 进程级单例（可选）
_global: OnlineConf | None = None
_global_parsers: dict[str, ValueParser] = {}
_global_lock = threading.Lock()


def register_global_parser(key: str, parser: ValueParser) -> None:
    """注册全局实例的值转换函数，可以在初始化之前调用"""
    with _global_lock:
        _global_parsers[key] = parser
        conf = _global
    if conf is not None:
        conf.add_parser(key, parser)


def init_global(options: Options | str | Path, schema: type | None = None, **kwargs: Any) -> OnlineConf:
    """
    初始化进程级配置实例

    Raises:
        OnlineConfError: 已经初始化过，或者初始化失败
    """
    global _global
    with _global_lock:
        if _global is not None:
            raise OnlineConfError("global onlineconf is already initialized")
        conf = OnlineConf(_as_options(options, **kwargs), schema=schema)
        for key, parser in _global_parsers.items():
            conf.add_parser(key, parser)
        conf.start()
        _global = conf
    return conf


def must_init_global(options: Options | str | Path, schema: type | None = None, **kwargs: Any) -> OnlineConf:
    """与 init_global 相同，但失败时记录日志并退出进程"""
    try:
        return init_global(options, schema=schema, **kwargs)
    except OnlineConfError as e:
        logger.critical(f"全局配置初始化失败: {e}")
        raise SystemExit(f"failed to init onlineconf: {e}") from e


def get_global() -> OnlineConf:
    """获取进程级配置实例"""
    conf = _global
    if conf is None:
        raise OnlineConfError("global onlineconf is not initialized")
    return conf


def global_config() -> Any:
    """进程级实例的绑定结构体；没有 schema 时返回当前快照"""
    conf = get_global()
    if conf.schema is not None:
        return conf.bound()
    return conf.current()


def close_global() -> None:
    """关闭并清除进程级配置实例，可以重复调用"""
    global _global
    with _global_lock:
        conf, _global = _global, None
    if conf is not None:
        conf.close()
