"""
分析流程的错误类型

- ErrorKind：固定的错误分类
- ErrorReport：分类后的错误报告（不可变，给展示层用）
- AnalysisError 及子类：流程内部主动抛出的异常
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """错误分类"""
    CONFIGURATION_ERROR = "ConfigurationError"
    NETWORK_ERROR = "NetworkError"
    PARSE_ERROR = "ParseError"
    VALIDATION_ERROR = "ValidationError"
    TIMEOUT_ERROR = "TimeoutError"
    UNKNOWN_ERROR = "UnknownError"


@dataclass(frozen=True)
class ErrorReport:
    """错误报告

    message 是面向用户的固定文案，不包含内部诊断信息；
    原始异常保存在 cause 中，只用于日志。
    """
    kind: ErrorKind
    message: str
    cause: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class AnalysisError(Exception):
    """分析流程异常基类"""


class ConfigurationError(AnalysisError):
    """API Key 缺失或无效"""


class NetworkError(AnalysisError):
    """网络/传输层失败"""


class ParseError(AnalysisError):
    """返回内容无法解析为 JSON"""

    def __init__(self, message: str, empty: bool = False):
        super().__init__(message)
        self.empty = empty


class ValidationError(AnalysisError):
    """JSON 结构或字段不符合约定"""

    def __init__(self, message: str, no_ingredients: bool = False):
        super().__init__(message)
        self.no_ingredients = no_ingredients


class AnalysisTimeoutError(AnalysisError):
    """超过分析时限"""


class VisionServiceError(AnalysisError):
    """识别服务返回了错误响应"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
