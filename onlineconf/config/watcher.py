"""配置文件监听和热重载模块

监听配置文件所在目录的变化，对写入事件去抖后重新解析配置并原子地发布新快照。
使用 watchdog 库监听文件系统事件。

状态机:
- IDLE: 正在监听，没有待处理的变化
- PENDING_RELOAD: 观察到相关的写入/创建事件，等待下一次检查
- CLOSED: 终止状态，监听已释放，后台线程已退出

文件事件只负责标记“有变化”，真正的重新解析由固定间隔的检查驱动，
编辑器一次保存产生的多次写入只会触发一次解析。连续失败达到 max_errors 次后停止监听。
"""

import asyncio
import inspect
import os
import queue
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..common.logging import get_logger_for_file
from ..models.errors import OnlineConfError, ParseError, WatchRuntimeError, WatchSetupError
from ..models.snapshot import ReloadEvent, ReloadState, Snapshot
from .parser import read_config
from .settings import Options
from .store import ConfigStore

EVENT_WRITE = "write"
EVENT_CREATE = "create"

_CLOSE = object()

Loader = Callable[[], tuple[Snapshot, Any]]
ReloadCallback = Callable[[ReloadEvent], Any]


class ConfigFileHandler(FileSystemEventHandler):
    """配置目录事件处理器

    把 watchdog 回调线程中的事件转交到重载引擎的队列，不做任何判断。
    """

    def __init__(self, events: queue.Queue):
        """
        初始化事件处理器

        Args:
            events: 重载引擎的消息队列
        """
        self.events = events

    def on_created(self, event: FileSystemEvent) -> None:
        self._push(EVENT_CREATE, event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._push(EVENT_WRITE, event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # 编辑器的原子保存：临时文件被重命名为配置文件
        self._push(EVENT_CREATE, event, event.dest_path)

    def _push(self, kind: str, event: FileSystemEvent, path: str | bytes) -> None:
        if event.is_directory:
            return
        try:
            self.events.put((kind, os.fsdecode(path)))
        except (TypeError, ValueError) as e:
            self.events.put(("error", WatchRuntimeError(f"cannot decode event path {path!r}: {e}")))


class ReloadEngine:
    """配置热重载引擎

    一个后台线程在 {文件事件, 检查间隔, 关闭信号} 上等待；
    所有状态转换都可以通过 handle_event / handle_error / tick 直接驱动。
    """

    def __init__(
        self,
        options: Options,
        store: ConfigStore,
        loader: Loader | None = None,
    ):
        """
        初始化重载引擎

        Args:
            options: 初始化参数
            store: 发布快照的目标存储
            loader: 读取并准备快照的函数，默认读取 options.file 并应用存储的前缀过滤
        """
        self.path = os.path.realpath(options.file)
        self.check_interval = options.check_interval.total_seconds()
        self.max_errors = options.max_errors
        self.store = store
        self._loader = loader or self._default_loader
        self._log = get_logger_for_file(self.path)

        self._lock = threading.Lock()
        self._state = ReloadState.IDLE
        self._pending = False
        self._errors = 0
        self._observer_failed = False

        self._events: queue.Queue = queue.Queue()
        self._observer: Observer | None = None
        self._thread: threading.Thread | None = None
        self._reload_callbacks: list[ReloadCallback] = []

    @property
    def state(self) -> ReloadState:
        with self._lock:
            return self._state

    @property
    def consecutive_errors(self) -> int:
        with self._lock:
            return self._errors

    @property
    def closed(self) -> bool:
        return self.state is ReloadState.CLOSED

    def add_reload_callback(self, callback: ReloadCallback) -> None:
        """
        添加重载回调函数，每次重载尝试之后以 ReloadEvent 调用

        Args:
            callback: 同步或异步回调函数
        """
        self._reload_callbacks.append(callback)

    def _default_loader(self) -> tuple[Snapshot, Any]:
        return self.store.prepare(read_config(self.path)), None

    def load(self) -> Snapshot:
        """同步读取、解析并发布一次配置，失败时抛出异常"""
        snapshot, bound = self._loader()
        self.store.publish(snapshot, bound)
        self._log.info(f"重新读取配置文件: {self.path} version: {snapshot.version}")
        return snapshot

    def start(self) -> None:
        """
        开始监听：创建目录监听、完成首次同步加载并启动后台线程

        Raises:
            WatchSetupError: 无法创建或挂载目录监听
            ParseError: 首次加载失败（加载函数抛出的其它异常也包装为 ParseError）
        """
        if self.closed:
            raise WatchSetupError(f"reload engine for {self.path} is closed")
        if self._thread is not None:
            self._log.warning("配置监听器已在运行")
            return

        watch_dir = os.path.dirname(self.path) or "."
        observer = Observer()
        try:
            observer.schedule(ConfigFileHandler(self._events), watch_dir, recursive=False)
            observer.start()
        except OSError as e:
            raise WatchSetupError(f"unable to watch config directory {watch_dir}: {e}") from e

        try:
            self.load()
        except Exception as e:
            observer.stop()
            observer.join()
            if isinstance(e, OnlineConfError):
                raise
            raise self._load_error(e) from e

        self._observer = observer
        self._thread = threading.Thread(
            target=self._run, name=f"onlineconf-{Path(self.path).name}", daemon=True
        )
        self._thread.start()
        self._log.info(f"开始监听配置文件: {self.path}")

    def handle_event(self, kind: str, path: str) -> None:
        """处理一个文件系统事件：只有被监听文件的写入/创建会标记待重载

        两边的路径都解析为真实路径后比较，符号链接目录下的事件也能匹配。
        """
        if os.path.realpath(path) != self.path:
            return
        if kind not in (EVENT_WRITE, EVENT_CREATE):
            return
        with self._lock:
            if self._state is ReloadState.CLOSED:
                return
            self._pending = True
            self._state = ReloadState.PENDING
        self._log.debug(f"配置文件事件: {kind} {path}")

    def handle_error(self, error: Exception) -> None:
        """处理监听器内部错误：记录日志并清除待重载标记，不计入错误次数"""
        self._log.error(f"配置文件监听错误: {error}")
        with self._lock:
            if self._state is ReloadState.CLOSED:
                return
            self._pending = False
            self._state = ReloadState.IDLE

    def tick(self) -> None:
        """一次去抖检查：有待处理的变化时重新加载配置"""
        self._check_observer()

        with self._lock:
            if self._state is ReloadState.CLOSED or not self._pending:
                return

        try:
            snapshot = self.load()
        except OnlineConfError as e:
            self._on_reload_failed(e)
            return
        except Exception as e:
            # 加载函数里的其它异常同样计入失败次数，后台线程不能因此退出
            error = self._load_error(e)
            error.__cause__ = e
            self._on_reload_failed(error)
            return

        with self._lock:
            if self._state is ReloadState.CLOSED:
                return
            self._pending = False
            self._errors = 0
            self._state = ReloadState.IDLE
        self._notify(ReloadEvent(ok=True, version=snapshot.version, state=ReloadState.IDLE))

    def _load_error(self, error: Exception) -> ParseError:
        return ParseError(f"failed to load config: {type(error).__name__}: {error}", filename=self.path)

    def _on_reload_failed(self, error: OnlineConfError) -> None:
        with self._lock:
            if self._state is ReloadState.CLOSED:
                return
            self._errors += 1
            errors = self._errors
            tripped = 0 < self.max_errors <= errors

        self._log.error(f"配置文件读取失败: {error} ({errors} of {self.max_errors})")
        if tripped:
            self._log.error(f"连续 {errors} 次重载失败，停止监听配置文件")
            self.close()

        self._notify(
            ReloadEvent(
                ok=False,
                error=str(error),
                consecutive_errors=errors,
                state=ReloadState.CLOSED if tripped else ReloadState.PENDING,
            )
        )

    def _check_observer(self) -> None:
        observer = self._observer
        if observer is None or self._observer_failed or observer.is_alive():
            return
        self._observer_failed = True
        self.handle_error(WatchRuntimeError("watchdog observer thread stopped"))

    def _run(self) -> None:
        """后台事件循环"""
        next_tick = time.monotonic() + self.check_interval
        while True:
            now = time.monotonic()
            if now >= next_tick:
                self.tick()
                if self.closed:
                    return
                next_tick = now + self.check_interval
                continue

            try:
                message = self._events.get(timeout=next_tick - now)
            except queue.Empty:
                continue

            if message is _CLOSE:
                return
            kind, payload = message
            if kind == "error":
                self.handle_error(payload)
            else:
                self.handle_event(kind, payload)

    def _notify(self, event: ReloadEvent) -> None:
        for callback in self._reload_callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    asyncio.run(callback(event))
                else:
                    callback(event)
            except Exception as e:
                self._log.error(f"配置重载回调执行失败 {getattr(callback, '__name__', callback)}: {e}")

    def close(self) -> None:
        """停止监听，可以重复调用

        在后台线程之外调用时，返回前保证监听已释放且后台线程已退出。
        """
        with self._lock:
            if self._state is ReloadState.CLOSED:
                return
            self._state = ReloadState.CLOSED
            self._pending = False
            observer, self._observer = self._observer, None
            thread = self._thread

        self._log.info("停止配置文件监听")
        self._events.put(_CLOSE)

        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join()

        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self):
        """上下文管理器入口"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """上下文管理器退出"""
        self.close()
