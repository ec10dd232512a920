"""
配置管理模块

提供配置文件的解析、存储、热重载、结构体绑定和请求级快照传递。

主要功能:
- 配置文件解析（#! Name / #! Version / key value / key:JSON {...} / #EOF）
- 去抖的热重载状态机与连续失败熔断
- 前缀过滤与值转换注册表
- 结构体绑定
- 请求级快照传递

使用示例:
    from onlineconf.config import Options, init

    conf = init(Options(file="app.conf", check_interval="1s", max_errors=3))
    print(conf.version(), conf.config()["key"])
"""

from .accessors import BoolVar, IntVar, StringVar, Var, bool_var, int_var, string_var, var
from .binder import FieldBinding, Setting, bind, binding_schema
from .context import attach, pinned, retrieve
from .manager import (
    OnlineConf,
    close_global,
    get_global,
    global_config,
    init,
    init_global,
    must_init,
    must_init_global,
    register_global_parser,
)
from .parser import parse_config, read_config
from .settings import Options
from .store import ConfigStore
from .watcher import ConfigFileHandler, ReloadEngine

__all__ = [
    # 解析
    "parse_config",
    "read_config",
    # 存储与重载
    "Options",
    "ConfigStore",
    "ReloadEngine",
    "ConfigFileHandler",
    # 配置实例
    "OnlineConf",
    "init",
    "must_init",
    "init_global",
    "must_init_global",
    "get_global",
    "global_config",
    "close_global",
    "register_global_parser",
    # 结构体绑定
    "Setting",
    "FieldBinding",
    "bind",
    "binding_schema",
    # 请求级快照
    "attach",
    "retrieve",
    "pinned",
    # 访问器
    "Var",
    "StringVar",
    "IntVar",
    "BoolVar",
    "var",
    "string_var",
    "int_var",
    "bool_var",
]
