"""
测试模块

包含项目的单元测试和集成测试。

测试结构:
- test_*.py: 单元测试
- integration/: 使用真实文件系统事件的集成测试
- fixtures.py: 测试夹具和工具

测试覆盖:
- 配置文件解析
- 存储、前缀过滤与值转换
- 热重载状态机与熔断
- 结构体绑定
- 请求级快照传递
"""

# 导入测试夹具
from .fixtures import *

__all__ = [
    # 测试夹具将通过 fixtures 模块的 __all__ 自动导出
]
