"""测试热重载状态机"""

import os
import queue
import threading
from types import SimpleNamespace

import pytest

from onlineconf.config.settings import Options
from onlineconf.config.store import ConfigStore
from onlineconf.config.watcher import (
    EVENT_CREATE,
    EVENT_WRITE,
    ConfigFileHandler,
    ReloadEngine,
)
from onlineconf.models import ParseError, ReloadState, WatchRuntimeError, WatchSetupError
from tests.fixtures import BASIC_CONF, FakeLoader, config_file, write_config


def _engine(tmp_path, loader=None, max_errors=0, store=None):
    options = Options(file=tmp_path / "app.conf", check_interval="50ms", max_errors=max_errors)
    return ReloadEngine(options, store or ConfigStore(), loader=loader)


class TestEventHandling:
    """测试文件事件与去抖"""

    def test_initial_state_idle(self, tmp_path):
        """测试初始状态"""
        engine = _engine(tmp_path, FakeLoader())
        assert engine.state is ReloadState.IDLE
        assert engine.consecutive_errors == 0

    @pytest.mark.parametrize("kind", [EVENT_WRITE, EVENT_CREATE])
    def test_write_or_create_marks_pending(self, tmp_path, kind):
        """测试写入和创建事件标记待重载"""
        engine = _engine(tmp_path, FakeLoader())
        engine.handle_event(kind, str(tmp_path / "app.conf"))
        assert engine.state is ReloadState.PENDING

    def test_other_paths_ignored(self, tmp_path):
        """测试目录中其它文件的事件被忽略"""
        engine = _engine(tmp_path, FakeLoader())
        engine.handle_event(EVENT_WRITE, str(tmp_path / "other.conf"))
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf.swp"))
        assert engine.state is ReloadState.IDLE

    def test_unnormalized_path_matches(self, tmp_path):
        """测试路径规范化后比较"""
        engine = _engine(tmp_path, FakeLoader())
        engine.handle_event(EVENT_WRITE, str(tmp_path) + "/./sub/../app.conf")
        assert engine.state is ReloadState.PENDING

    def test_symlinked_directory_matches(self, tmp_path):
        """测试通过符号链接目录配置的文件也能匹配真实路径上的事件"""
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real, target_is_directory=True)
        options = Options(file=link / "app.conf", check_interval="50ms")

        engine = ReloadEngine(options, ConfigStore(), loader=FakeLoader())
        engine.handle_event(EVENT_WRITE, str(real / "app.conf"))
        assert engine.state is ReloadState.PENDING

        engine = ReloadEngine(options, ConfigStore(), loader=FakeLoader())
        engine.handle_event(EVENT_CREATE, str(link / "app.conf"))
        assert engine.state is ReloadState.PENDING

    def test_other_event_kinds_ignored(self, tmp_path):
        """测试删除等事件不触发重载"""
        engine = _engine(tmp_path, FakeLoader())
        engine.handle_event("delete", str(tmp_path / "app.conf"))
        assert engine.state is ReloadState.IDLE

    def test_tick_while_idle_is_noop(self, tmp_path):
        """测试没有变化时检查不做任何事"""
        loader = FakeLoader()
        engine = _engine(tmp_path, loader)
        engine.tick()
        engine.tick()
        assert loader.calls == 0
        assert engine.state is ReloadState.IDLE

    def test_burst_coalesced_into_single_reload(self, tmp_path):
        """测试一次检查间隔内的多次写入只触发一次解析"""
        loader = FakeLoader("v2")
        store = ConfigStore()
        engine = _engine(tmp_path, loader, store=store)

        for _ in range(10):
            engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        engine.tick()
        engine.tick()

        assert loader.calls == 1
        assert store.current_version() == "v2"
        assert engine.state is ReloadState.IDLE

    def test_watcher_error_clears_pending(self, tmp_path):
        """测试监听错误清除待重载标记且不计入错误次数"""
        loader = FakeLoader()
        engine = _engine(tmp_path, loader, max_errors=1)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))

        engine.handle_error(WatchRuntimeError("queue overflow"))
        engine.tick()

        assert engine.state is ReloadState.IDLE
        assert engine.consecutive_errors == 0
        assert loader.calls == 0


class TestCircuitBreaker:
    """测试连续失败熔断"""

    def test_failure_keeps_previous_snapshot_and_retries(self, tmp_path):
        """测试失败时保留旧快照，并在下一次检查时重试"""
        store = ConfigStore()
        loader = FakeLoader(ParseError("missing terminator"), "v2")
        engine = _engine(tmp_path, loader, store=store)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))

        engine.tick()
        assert engine.state is ReloadState.PENDING
        assert engine.consecutive_errors == 1
        assert store.current_version() == ""

        # 不需要新的写入事件
        engine.tick()
        assert engine.state is ReloadState.IDLE
        assert engine.consecutive_errors == 0
        assert store.current_version() == "v2"
        assert loader.calls == 2

    def test_three_failures_close_engine(self, tmp_path):
        """测试 max_errors=3 时连续三次失败关闭引擎"""
        error = ParseError("missing terminator")
        loader = FakeLoader(error, error, error, "never")
        engine = _engine(tmp_path, loader, max_errors=3)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))

        engine.tick()
        engine.tick()
        assert engine.state is ReloadState.PENDING
        engine.tick()

        assert engine.state is ReloadState.CLOSED
        assert engine.closed
        engine.tick()
        assert loader.calls == 3

    def test_success_resets_counter(self, tmp_path):
        """测试成功一次后计数清零"""
        error = ParseError("bad")
        loader = FakeLoader(error, error, "ok", error, error, "ok")
        engine = _engine(tmp_path, loader, max_errors=3)
        path = str(tmp_path / "app.conf")

        engine.handle_event(EVENT_WRITE, path)
        for _ in range(3):
            engine.tick()
        assert engine.consecutive_errors == 0

        engine.handle_event(EVENT_WRITE, path)
        for _ in range(3):
            engine.tick()

        assert engine.state is ReloadState.IDLE
        assert loader.calls == 6

    def test_unlimited_retries(self, tmp_path):
        """测试 max_errors=0 时无限重试"""
        loader = FakeLoader(*[ParseError("bad")] * 20)
        engine = _engine(tmp_path, loader, max_errors=0)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        for _ in range(20):
            engine.tick()
        assert engine.state is ReloadState.PENDING
        assert engine.consecutive_errors == 20

    def test_unexpected_loader_exception_counts_as_failure(self, tmp_path):
        """测试加载函数抛出的其它异常也计入失败次数并通知回调"""
        events = []
        store = ConfigStore()
        loader = FakeLoader(OverflowError("Python int too large to convert to C int"), "v2")
        engine = _engine(tmp_path, loader, max_errors=3, store=store)
        engine.add_reload_callback(events.append)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))

        engine.tick()
        assert engine.state is ReloadState.PENDING
        assert engine.consecutive_errors == 1
        assert events[0].ok is False
        assert "OverflowError" in events[0].error

        engine.tick()
        assert engine.state is ReloadState.IDLE
        assert store.current_version() == "v2"

    def test_unexpected_loader_exception_trips_breaker(self, tmp_path):
        """测试其它异常同样会触发熔断"""
        engine = _engine(tmp_path, FakeLoader(KeyError("{}")), max_errors=1)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        engine.tick()
        assert engine.state is ReloadState.CLOSED

    def test_events_ignored_after_close(self, tmp_path):
        """测试关闭后忽略事件"""
        engine = _engine(tmp_path, FakeLoader())
        engine.close()
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        assert engine.state is ReloadState.CLOSED


class TestReloadCallbacks:
    """测试重载回调"""

    def test_callbacks_receive_events(self, tmp_path):
        """测试每次重载尝试都会通知回调"""
        events = []
        loader = FakeLoader(ParseError("bad"), "v2")
        engine = _engine(tmp_path, loader)
        engine.add_reload_callback(events.append)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))

        engine.tick()
        engine.tick()

        assert [e.ok for e in events] == [False, True]
        assert events[0].consecutive_errors == 1
        assert events[0].state is ReloadState.PENDING
        assert "bad" in events[0].error
        assert events[1].version == "v2"

    def test_async_callback(self, tmp_path):
        """测试异步回调"""
        versions = []

        async def on_reload(event):
            versions.append(event.version)

        engine = _engine(tmp_path, FakeLoader("v3"))
        engine.add_reload_callback(on_reload)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        engine.tick()

        assert versions == ["v3"]

    def test_breaker_event_reports_closed(self, tmp_path):
        """测试熔断时回调收到 CLOSED 状态"""
        events = []
        engine = _engine(tmp_path, FakeLoader(ParseError("bad")), max_errors=1)
        engine.add_reload_callback(events.append)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        engine.tick()
        assert events[-1].state is ReloadState.CLOSED

    def test_failing_callback_does_not_break_engine(self, tmp_path):
        """测试回调异常不影响引擎"""

        def broken(event):
            raise RuntimeError("boom")

        store = ConfigStore()
        engine = _engine(tmp_path, FakeLoader("v2"), store=store)
        engine.add_reload_callback(broken)
        engine.handle_event(EVENT_WRITE, str(tmp_path / "app.conf"))
        engine.tick()

        assert store.current_version() == "v2"
        assert engine.state is ReloadState.IDLE


class TestLifecycle:
    """测试启动与关闭"""

    def test_start_loads_and_close_is_idempotent(self, config_file):
        """测试启动时同步加载，重复关闭不会出错"""
        store = ConfigStore()
        options = Options(file=config_file, check_interval="50ms")
        engine = ReloadEngine(options, store)

        engine.start()
        try:
            assert store.current_version() == "42"
            assert engine.state is ReloadState.IDLE
        finally:
            engine.close()
            engine.close()

        assert engine.state is ReloadState.CLOSED
        assert engine._thread is not None and not engine._thread.is_alive()

    def test_start_fails_on_parse_error(self, tmp_path):
        """测试首次加载失败时启动失败"""
        path = write_config(tmp_path / "app.conf", "#! Version 1\nkey value\n")
        engine = ReloadEngine(Options(file=path), ConfigStore())
        with pytest.raises(ParseError):
            engine.start()
        assert engine._thread is None

    def test_start_wraps_unexpected_loader_exception(self, config_file):
        """测试首次加载的其它异常包装为 ParseError"""
        engine = ReloadEngine(Options(file=config_file), ConfigStore(), loader=FakeLoader(KeyError("{}")))
        with pytest.raises(ParseError, match="KeyError") as exc_info:
            engine.start()
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert engine._thread is None

    def test_start_fails_without_directory(self, tmp_path):
        """测试监听目录不存在时启动失败"""
        engine = ReloadEngine(Options(file=tmp_path / "missing" / "app.conf"), ConfigStore())
        with pytest.raises((WatchSetupError, ParseError)):
            engine.start()

    def test_start_after_close_rejected(self, config_file):
        """测试关闭后不能重新启动"""
        engine = ReloadEngine(Options(file=config_file), ConfigStore())
        engine.close()
        with pytest.raises(WatchSetupError):
            engine.start()

    def test_concurrent_close(self, config_file):
        """测试并发关闭不会死锁"""
        engine = ReloadEngine(Options(file=config_file, check_interval="50ms"), ConfigStore())
        engine.start()
        threads = [threading.Thread(target=engine.close) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)
        assert engine.closed

    def test_context_manager(self, config_file):
        """测试上下文管理器"""
        store = ConfigStore()
        with ReloadEngine(Options(file=config_file), store) as engine:
            assert store.current().name == "/onlineconf/test"
        assert engine.closed


class TestConfigFileHandler:
    """测试 watchdog 事件转换"""

    def _event(self, src, dest="", is_directory=False):
        return SimpleNamespace(src_path=src, dest_path=dest, is_directory=is_directory)

    def test_events_forwarded(self):
        """测试文件事件被转交到队列"""
        events = queue.Queue()
        handler = ConfigFileHandler(events)

        handler.on_modified(self._event("/etc/app.conf"))
        handler.on_created(self._event(b"/etc/app.conf"))
        handler.on_moved(self._event("/etc/.app.conf.tmp", "/etc/app.conf"))

        assert events.get_nowait() == (EVENT_WRITE, "/etc/app.conf")
        assert events.get_nowait() == (EVENT_CREATE, os.fsdecode(b"/etc/app.conf"))
        assert events.get_nowait() == (EVENT_CREATE, "/etc/app.conf")

    def test_directory_events_dropped(self):
        """测试目录事件被丢弃"""
        events = queue.Queue()
        ConfigFileHandler(events).on_modified(self._event("/etc", is_directory=True))
        assert events.empty()
