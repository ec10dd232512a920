"""类型化单值访问器

访问器从当前（或给定）上下文中固定的快照读取值，找不到时使用默认值。
固定的是绑定结构体时，按字段绑定的 key 读取对应属性（包括嵌套段）。
创建访问器时会在配置实例（默认是进程级实例）上注册该 key 的转换函数，
发布快照时字符串值就会被转换成对应的类型。

使用示例:
    timeout = int_var("timeout", 100, "request timeout in ms")

    with conf.pinned():
        timeout.get()
"""

from contextvars import Context
from typing import Any, Generic, TypeVar

from ..models.errors import BindingError, MissingKeyError
from ..models.snapshot import Snapshot
from .binder import binding_schema, parse_bool, parse_int
from .context import retrieve
from .manager import OnlineConf, register_global_parser
from .store import ValueParser

T = TypeVar("T")


class Var(Generic[T]):
    """单值访问器

    Args:
        name: 配置 key
        default: 默认值，为None且没有配置值时 get() 抛出 MissingKeyError
        description: 说明文字，仅用于文档
        conf: 注册转换函数的配置实例，为None时注册到进程级实例
    """

    parser: ValueParser | None = None

    def __init__(
        self,
        name: str,
        default: T | None = None,
        description: str = "",
        conf: OnlineConf | None = None,
    ):
        self.name = name
        self.default = default
        self.description = description

        if self.parser is not None:
            if conf is None:
                register_global_parser(name, self.parser)
            else:
                conf.add_parser(name, self.parser)

    def get(self, ctx: Context | None = None) -> T:
        """从上下文固定的快照（或绑定结构体）中读取值"""
        pinned = retrieve(ctx)
        if isinstance(pinned, Snapshot):
            value = pinned.data.get(self.name)
        else:
            value = _from_bound(pinned, self.name)
        if value is None:
            value = self.default
        if value is None:
            raise MissingKeyError(self.name)
        return self.convert(value)

    def convert(self, value: Any) -> T:
        if self.parser is None or not isinstance(value, str):
            return value
        # 发布时转换失败的值仍然是原始字符串
        try:
            return self.parser(value)
        except ValueError as e:
            raise BindingError(f"cannot parse {value!r}: {e}", field=self.name) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, default={self.default!r})"


def _from_bound(obj: Any, key: str) -> Any:
    """按绑定 key 从结构体（包括嵌套段）中取值，不是绑定结构体时返回None"""
    try:
        schema = binding_schema(type(obj))
    except BindingError:
        return None
    for binding in schema:
        value = getattr(obj, binding.attr, None)
        if binding.nested:
            if value is not None:
                found = _from_bound(value, key)
                if found is not None:
                    return found
        elif binding.key == key:
            return value
    return None


class StringVar(Var[str]):
    parser = staticmethod(str)


class IntVar(Var[int]):
    parser = staticmethod(parse_int)


class BoolVar(Var[bool]):
    parser = staticmethod(parse_bool)


def var(name: str, default: Any = None, description: str = "", conf: OnlineConf | None = None) -> Var[Any]:
    """不做类型转换的访问器"""
    return Var(name, default, description, conf=conf)


def string_var(name: str, default: str, description: str = "", conf: OnlineConf | None = None) -> StringVar:
    return StringVar(name, default, description, conf=conf)


def int_var(name: str, default: int, description: str = "", conf: OnlineConf | None = None) -> IntVar:
    return IntVar(name, default, description, conf=conf)


def bool_var(name: str, default: bool, description: str = "", conf: OnlineConf | None = None) -> BoolVar:
    return BoolVar(name, default, description, conf=conf)
