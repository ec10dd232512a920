"""结构体绑定

把快照中的键值映射到 dataclass 或 pydantic 模型实例的字段上。
字段元数据通过 ``typing.Annotated`` 声明::

    @dataclass
    class ServerSettings:
        host: str = "localhost"
        port: Annotated[int, Setting(key="server.port", default="8080")] = 0
        timeout: Annotated[timedelta, Setting(default="250ms")] = timedelta(0)
        secret: Annotated[str, Setting(ignore=True)] = ""
        limits: Optional[Limits] = None

每个类型的绑定描述只生成一次并缓存。
"""

import dataclasses
import functools
import types
from collections.abc import Mapping
from datetime import timedelta
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel

from ..common.durations import parse_duration
from ..models.errors import BindingError
from ..models.snapshot import Snapshot

_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


@dataclasses.dataclass(frozen=True)
class Setting:
    """字段绑定元数据

    Attributes:
        key: 覆盖默认 key（默认使用字段名）
        default: 快照中没有该 key 时使用的字面量
        ignore: 为True时跳过该字段
    """

    key: str | None = None
    default: str | None = None
    ignore: bool = False


@dataclasses.dataclass(frozen=True)
class FieldBinding:
    """单个字段的绑定描述"""

    attr: str
    key: str
    default: Any
    kind: type
    optional: bool = False

    @property
    def nested(self) -> bool:
        return _is_structure(self.kind)


def parse_bool(value: str) -> bool:
    """按标准字面量解析布尔值"""
    if value in _TRUE_LITERALS:
        return True
    if value in _FALSE_LITERALS:
        return False
    raise ValueError(f"invalid syntax for bool: {value!r}")


def parse_int(value: str) -> int:
    """解析整数，支持 0x/0o/0b 进制前缀"""
    return int(value, 0)


_COERCERS = {
    str: lambda value: value,
    bool: parse_bool,
    int: parse_int,
    float: float,
    timedelta: parse_duration,
}


def _is_structure(tp: Any) -> bool:
    return isinstance(tp, type) and (
        dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel)
    )


def _split_annotated(tp: Any) -> tuple[Any, Setting | None]:
    if get_origin(tp) is Annotated:
        base, *extras = get_args(tp)
        settings = [m for m in extras if isinstance(m, Setting)]
        return base, (settings[-1] if settings else None)
    return tp, None


def _unwrap_optional(tp: Any) -> tuple[Any, bool]:
    if get_origin(tp) in (Union, types.UnionType):
        args = get_args(tp)
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1 and len(args) == 2:
            return rest[0], True
    return tp, False


def _declared_fields(cls: type) -> list[tuple[str, Any, Setting | None]]:
    """列出 (字段名, 类型, 元数据)"""
    if dataclasses.is_dataclass(cls):
        if cls.__dataclass_params__.frozen:
            raise BindingError(f"unsupported destination: {cls.__name__} is frozen")
        hints = get_type_hints(cls, include_extras=True)
        result = []
        for f in dataclasses.fields(cls):
            tp, setting = _split_annotated(hints.get(f.name, Any))
            result.append((f.name, tp, setting))
        return result

    if isinstance(cls, type) and issubclass(cls, BaseModel):
        if cls.model_config.get("frozen"):
            raise BindingError(f"unsupported destination: {cls.__name__} is frozen")
        # pydantic 会把 Annotated 的附加元数据保存在 FieldInfo.metadata 中
        result = []
        for name, info in cls.model_fields.items():
            settings = [m for m in info.metadata if isinstance(m, Setting)]
            result.append((name, info.annotation, settings[-1] if settings else None))
        return result

    raise BindingError(
        f"unsupported destination: {getattr(cls, '__name__', cls)!s} is not a dataclass or pydantic model"
    )


@functools.lru_cache(maxsize=None)
def binding_schema(cls: type) -> tuple[FieldBinding, ...]:
    """
    生成（并缓存）某个类型的绑定描述

    Raises:
        BindingError: 类型不是可写的 dataclass / pydantic 模型，或字段类型不受支持
    """
    schema = []
    for name, tp, setting in _declared_fields(cls):
        tp, optional = _unwrap_optional(tp)
        tp, inner_setting = _split_annotated(tp)
        setting = setting or inner_setting or Setting()

        if setting.ignore:
            continue
        if tp not in _COERCERS and not _is_structure(tp):
            raise BindingError(f"unsupported field type: {tp!r}", field=name)

        schema.append(
            FieldBinding(
                attr=name,
                key=setting.key or name,
                default=setting.default,
                kind=tp,
                optional=optional,
            )
        )
    return tuple(schema)


_SKIP = object()


def _coerce(binding: FieldBinding, value: Any) -> Any:
    if isinstance(value, str):
        try:
            return _COERCERS[binding.kind](value)
        except (ValueError, OverflowError) as e:
            raise BindingError(
                f"cannot parse {value!r} as {binding.kind.__name__}: {e}",
                field=binding.attr,
            ) from e
    # 已经是目标类型的值（例如解析器注册表转换过的）直接赋值；bool 不能冒充 int
    if isinstance(value, binding.kind) and not (binding.kind is int and isinstance(value, bool)):
        return value
    return _SKIP


def _allocate(binding: FieldBinding) -> Any:
    try:
        return binding.kind()
    except (TypeError, ValueError) as e:
        raise BindingError(
            f"cannot allocate nested section {binding.kind.__name__}: {e}",
            field=binding.attr,
        ) from e


def bind(data: Mapping[str, Any] | Snapshot, dest: Any) -> Any:
    """
    把键值数据绑定到目标实例上

    Args:
        data: 快照数据（或快照本身）
        dest: dataclass 或 pydantic 模型实例，原地修改

    Returns:
        dest 本身，便于链式调用

    Raises:
        BindingError: 目标不受支持或某个字段转换失败；失败之前已处理的字段保持已设置的值
    """
    if isinstance(data, Snapshot):
        data = data.data
    if isinstance(dest, type):
        raise BindingError(f"unsupported destination: expected an instance, got class {dest.__name__}")

    for binding in binding_schema(type(dest)):
        if binding.nested:
            section = getattr(dest, binding.attr, None)
            if section is None:
                section = _allocate(binding)
                setattr(dest, binding.attr, section)
            bind(data, section)
            continue

        if binding.key in data:
            value = data[binding.key]
        elif binding.default is not None:
            value = binding.default
        else:
            continue

        # :JSON 变量解码出的嵌套字典目前不支持绑定，直接跳过
        coerced = _coerce(binding, value)
        if coerced is _SKIP:
            continue
        setattr(dest, binding.attr, coerced)

    return dest
