"""时长字面量解析

支持 Go 风格的时长写法，例如 "300ms"、"5s"、"1h30m"、"-1.5h"。
"""

import re
from datetime import timedelta

# 各单位对应的微秒数（timedelta 的精度到微秒，纳秒会被截断）
_UNIT_MICROSECONDS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60 * 1_000_000,
    "h": 3600 * 1_000_000,
}

_COMPONENT_RE = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """
    解析时长字面量

    Args:
        text: 时长字符串，例如 "250ms" 或 "1h30m"

    Returns:
        timedelta: 解析后的时长

    Raises:
        ValueError: 字面量格式不正确或超出范围
    """
    s = text.strip()
    if not s:
        raise ValueError(f"invalid duration: {text!r}")

    sign = 1
    if s[0] in "+-":
        if s[0] == "-":
            sign = -1
        s = s[1:]

    if s == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    while pos < len(s):
        match = _COMPONENT_RE.match(s, pos)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        number, unit = match.groups()
        total += float(number) * _UNIT_MICROSECONDS[unit]
        pos = match.end()

    if pos == 0:
        raise ValueError(f"invalid duration: {text!r}")

    try:
        return timedelta(microseconds=sign * total)
    except OverflowError as e:
        raise ValueError(f"duration out of range: {text!r}") from e
