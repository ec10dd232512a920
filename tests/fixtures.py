"""测试共用的示例配置、辅助函数和假加载器"""

from pathlib import Path
from typing import Any

import pytest

from onlineconf.models import Snapshot

BASIC_CONF = """\
#! Name /onlineconf/test
#! Version 42
# plain comment
#@ /some/alias
test1 some value
test2 100
test3 true
svc.timeout 250ms
#EOF
"""

__all__ = [
    "BASIC_CONF",
    "make_document",
    "write_config",
    "FakeLoader",
    "config_file",
]


def make_document(
    entries: dict[str, str],
    name: str = "/onlineconf/test",
    version: str = "1",
    terminator: bool = True,
) -> str:
    """按给定的键值生成格式正确的配置文档"""
    lines = []
    if name:
        lines.append(f"#! Name {name}")
    if version:
        lines.append(f"#! Version {version}")
    lines.extend(f"{key} {value}" for key, value in entries.items())
    if terminator:
        lines.append("#EOF")
    return "\n".join(lines) + "\n"


def write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class FakeLoader:
    """手动驱动重载引擎用的假加载器

    按顺序消费 outcomes：异常实例会被抛出，其它值作为快照版本返回。
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self) -> tuple[Snapshot, Any]:
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, Exception):
            raise outcome
        return Snapshot(name="fake", version=str(outcome), data={"calls": str(self.calls)}), None


@pytest.fixture
def config_file(tmp_path) -> Path:
    """新目录中的基础配置文件"""
    return write_config(tmp_path / "onlineconf.conf", BASIC_CONF)
