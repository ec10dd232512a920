"""配置文件格式解析

逐行解析的扁平文本格式::

    #! Name <string>
    #! Version <string>
    <key> <value>
    <key>:JSON <json-object-literal>
    #@ <anything>
    # <comment>
    #EOF

解析是纯函数，不做任何 I/O（read_config 除外），失败时不返回部分结果。
"""

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from ..models.errors import ParseError
from ..models.snapshot import Snapshot

MARKER_EOF = "#EOF"
MARKER_SPECIAL = "#!"
MARKER_SYMLINK = "#@"
JSON_SUFFIX = ":JSON"


def parse_config(text: str | Iterable[str]) -> Snapshot:
    """
    解析配置文本

    Args:
        text: 配置文本，或逐行迭代的行序列（例如打开的文件对象）

    Returns:
        Snapshot: 解析后的配置快照

    Raises:
        ParseError: 格式错误、缺少 #EOF、缺少 Name/Version 或 JSON 解码失败
    """
    lines = text.splitlines() if isinstance(text, str) else text

    name = ""
    version = ""
    data: dict[str, Any] = {}
    terminated = False

    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue

        if line == MARKER_EOF:
            terminated = True
            break

        if line.startswith("#"):
            if line.startswith(MARKER_SPECIAL):
                key, value = _parse_special(line, lineno)
                if key == "name":
                    name = value
                elif key == "version":
                    version = value
                else:
                    logger.warning(f"unexpected special key: {key} line: {line}")
            # #@ 别名指令保留给以后使用，其余是普通注释
            continue

        key, value = _parse_var(line, lineno)
        data[key] = value

    if not terminated:
        raise ParseError("missing terminator")

    if not name and not version:
        raise ParseError('"Version" or/and "Name" variables were not found')

    return Snapshot(name=name, version=version, data=data)


def read_config(path: str | Path) -> Snapshot:
    """
    读取并解析配置文件

    Raises:
        ParseError: 文件无法读取或解析失败
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            return parse_config(f)
    except ParseError as e:
        e.filename = str(path)
        raise
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"failed to read config: {e}", filename=str(path)) from e


def _parse_special(line: str, lineno: int) -> tuple[str, str]:
    body = line[len(MARKER_SPECIAL):].strip()
    key, value = _split_line(body, lineno)
    return key.lower(), value


def _parse_var(line: str, lineno: int) -> tuple[str, Any]:
    key, value = _split_line(line, lineno)
    if not key.endswith(JSON_SUFFIX):
        return key, value

    key = key[: -len(JSON_SUFFIX)]
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError as e:
        raise ParseError(f"failed to parse json variable: {value} {e}", lineno=lineno) from e
    if not isinstance(decoded, dict):
        raise ParseError(
            f"failed to parse json variable: {value} expected a JSON object", lineno=lineno
        )
    return key, decoded


def _split_line(line: str, lineno: int) -> tuple[str, str]:
    """按第一个空格拆分 key 和 value"""
    key, sep, value = line.partition(" ")
    if not sep:
        raise ParseError(f"unexpected line: {line}", lineno=lineno)
    return key.strip(), value.strip()
