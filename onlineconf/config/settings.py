"""初始化参数

对应配置文件监听器的启动参数：监听的文件、检查间隔、最大连续错误次数、前缀过滤。
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..common.durations import parse_duration

DEFAULT_CHECK_INTERVAL = timedelta(seconds=5)


class Options(BaseModel):
    """配置监听器初始化参数"""

    file: Path = Field(description="配置文件路径")
    check_interval: timedelta = Field(
        DEFAULT_CHECK_INTERVAL, description="去抖检查间隔，重载延迟不超过该值"
    )
    max_errors: int = Field(
        0, ge=0, description="连续重载失败达到该次数后停止监听，0 表示无限重试"
    )
    prefixes: list[str] = Field(
        default_factory=list, description="只发布匹配前缀的 key，并去掉前缀"
    )

    @field_validator("file", mode="after")
    @classmethod
    def _resolve_file(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("check_interval", mode="before")
    @classmethod
    def _parse_check_interval(cls, value: Any) -> Any:
        # 支持 "5s"、"250ms" 这样的时长字面量
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError:
                # 交给 pydantic 处理 ISO 8601 等其它格式
                return value
        return value

    @field_validator("check_interval", mode="after")
    @classmethod
    def _positive_check_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("check_interval must be positive")
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> "Options":
        """
        从环境变量创建参数，关键字参数优先级更高

        环境变量:
            ONLINECONF_FILE: 配置文件路径
            ONLINECONF_CHECK_INTERVAL: 检查间隔，例如 "5s"
            ONLINECONF_MAX_ERRORS: 最大连续错误次数
            ONLINECONF_PREFIXES: 逗号分隔的前缀列表
        """
        values: dict[str, Any] = {}
        if os.getenv("ONLINECONF_FILE"):
            values["file"] = os.environ["ONLINECONF_FILE"]
        if os.getenv("ONLINECONF_CHECK_INTERVAL"):
            values["check_interval"] = os.environ["ONLINECONF_CHECK_INTERVAL"]
        if os.getenv("ONLINECONF_MAX_ERRORS"):
            values["max_errors"] = os.environ["ONLINECONF_MAX_ERRORS"]
        if os.getenv("ONLINECONF_PREFIXES"):
            values["prefixes"] = [
                p for p in os.environ["ONLINECONF_PREFIXES"].split(",") if p
            ]
        values.update(overrides)
        return cls.model_validate(values)
