"""错误类型定义

所有库内异常都继承自 OnlineConfError，调用方可以统一捕获。
"""


class OnlineConfError(Exception):
    """onlineconf 基础异常"""


class ParseError(OnlineConfError):
    """配置文件解析失败

    包括：行格式错误、缺少结束标记、缺少 Name/Version、JSON 变量解码失败，
    以及读取文件本身失败。
    """

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        filename: str | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.filename = filename
        super().__init__(str(self))

    def __str__(self) -> str:
        location = ""
        if self.filename:
            location = self.filename
            if self.lineno is not None:
                location += f":{self.lineno}"
        elif self.lineno is not None:
            location = f"line {self.lineno}"
        if location:
            return f"{location}: {self.message}"
        return self.message


class WatchSetupError(OnlineConfError):
    """无法创建或挂载文件系统监听"""


class WatchRuntimeError(OnlineConfError):
    """文件系统监听在运行中报告的内部错误（非致命）"""


class BindingError(OnlineConfError):
    """结构体绑定失败：目标类型不受支持，或某字段的类型转换失败"""

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


class MissingKeyError(OnlineConfError, KeyError):
    """类型化访问器的 key 既没有值也没有默认值"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"key does not exist: {self.key}"
