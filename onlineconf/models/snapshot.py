"""配置快照模型"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# 快照中的值：原始字符串或 :JSON 变量解码后的嵌套字典。
# 解析器注册表可能把字符串转换成 int/bool 等类型化值，所以 data 按 Any 存放
Value = Union[str, dict[str, Any]]


class Snapshot(BaseModel):
    """一次完整解析得到的不可变配置镜像"""

    model_config = ConfigDict(frozen=True)

    name: str = Field("", description="配置名称（#! Name）")
    version: str = Field("", description="配置版本（#! Version）")
    data: Mapping[str, Any] = Field(default_factory=dict, description="键值数据")

    @field_validator("data", mode="after")
    @classmethod
    def _freeze_data(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        # 拷贝后只读包装，发布后的字典不会被原地修改
        return MappingProxyType(dict(value))

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def __len__(self) -> int:
        return len(self.data)


EMPTY_SNAPSHOT = Snapshot()


class ReloadState(str, Enum):
    """重载引擎状态"""

    IDLE = "idle"
    PENDING = "pending_reload"
    CLOSED = "closed"


class ReloadEvent(BaseModel):
    """一次重载尝试的结果，传递给重载回调"""

    ok: bool = Field(description="重载是否成功")
    version: str | None = Field(None, description="成功时发布的版本")
    error: str | None = Field(None, description="失败时的错误信息")
    consecutive_errors: int = Field(0, description="当前连续失败次数")
    state: ReloadState = Field(description="本次尝试之后的引擎状态")
