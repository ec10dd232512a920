"""
OnlineConf

热重载的扁平文本配置存储：解析配置文件，文件变化时重新发布一致的内存快照，
应用代码按 key 读取或绑定到结构体，读取从不因为重载而阻塞。

主要功能:
- 配置文件格式解析
- 去抖、容错的热重载引擎（连续失败熔断）
- 结构体绑定与类型转换
- 请求级快照传递
- 类型化单值访问器

使用示例:
    from onlineconf import init

    with init("/etc/app/app.conf", max_errors=3) as conf:
        print(conf.version())
"""

__version__ = "1.0.0"
__description__ = "Hot-reloading flat-text configuration store"

from .common import configure_logging
from .config import (
    ConfigStore,
    OnlineConf,
    Options,
    ReloadEngine,
    Setting,
    attach,
    bind,
    bool_var,
    close_global,
    get_global,
    global_config,
    init,
    init_global,
    int_var,
    must_init,
    must_init_global,
    parse_config,
    pinned,
    read_config,
    retrieve,
    string_var,
    var,
)
from .models import (
    BindingError,
    MissingKeyError,
    OnlineConfError,
    ParseError,
    ReloadEvent,
    ReloadState,
    Snapshot,
    WatchRuntimeError,
    WatchSetupError,
)

__all__ = [
    "configure_logging",
    "parse_config",
    "read_config",
    "Options",
    "ConfigStore",
    "ReloadEngine",
    "OnlineConf",
    "init",
    "must_init",
    "init_global",
    "must_init_global",
    "get_global",
    "global_config",
    "close_global",
    "Setting",
    "bind",
    "attach",
    "retrieve",
    "pinned",
    "var",
    "string_var",
    "int_var",
    "bool_var",
    "Snapshot",
    "ReloadEvent",
    "ReloadState",
    "OnlineConfError",
    "ParseError",
    "WatchSetupError",
    "WatchRuntimeError",
    "BindingError",
    "MissingKeyError",
    "__version__",
    "__description__",
]
