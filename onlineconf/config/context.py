"""请求级配置快照传递

用 contextvars 把一个不可变的快照（或已经绑定好的结构体）固定在一次请求的调用链上，
即使重载引擎在请求处理过程中发布了新版本，本次请求看到的配置也保持一致。
"""

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from ..models.snapshot import EMPTY_SNAPSHOT

# 当前上下文固定的配置快照
config_var: contextvars.ContextVar[Any] = contextvars.ContextVar("onlineconf_snapshot")


def attach(value: Any, ctx: contextvars.Context | None = None) -> contextvars.Context:
    """
    返回一个固定了配置快照的新上下文

    Args:
        value: 快照或绑定好的结构体
        ctx: 基础上下文，为None时使用当前上下文

    Returns:
        contextvars.Context: 新的上下文，可通过 ctx.run(...) 在其中执行调用链
    """
    base = contextvars.copy_context() if ctx is None else ctx
    derived = base.copy()
    derived.run(config_var.set, value)
    return derived


def retrieve(ctx: contextvars.Context | None = None) -> Any:
    """
    取出上下文中固定的快照

    没有固定快照时返回空快照，而不是抛出异常。
    """
    if ctx is None:
        return config_var.get(EMPTY_SNAPSHOT)
    return ctx.get(config_var, EMPTY_SNAPSHOT)


@contextmanager
def pinned(value: Any) -> Iterator[Any]:
    """在当前上下文中固定快照，退出时恢复

    使用示例:
        with pinned(conf.current()):
            handle_request()
    """
    token = config_var.set(value)
    try:
        yield value
    finally:
        config_var.reset(token)
