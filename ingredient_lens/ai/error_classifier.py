"""
错误分类器

把分析流程中的任意异常归类为固定的 ErrorKind，并给出面向用户的中文提示。
规则按顺序匹配，第一条命中的规则生效。
"""
import asyncio
import json
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

import httpx

from ingredient_lens.common import Logger
from .errors import (
    AnalysisTimeoutError,
    ConfigurationError,
    ErrorKind,
    ErrorReport,
    NetworkError,
    ParseError,
    ValidationError,
    VisionServiceError,
)


# ==================== 用户提示文案 ====================

MESSAGES = {
    "missing_key": "环境配置错误：请检查部署平台的 API_KEY 设置是否正确注入。",
    "invalid_key": "API Key 无效或已失效，请联系管理员检查部署配置。",
    "network": "网络连接异常，请检查网络后重试。",
    "parse": "识别结果解析失败，请重试。",
    "empty": "AI 未能识别到有效内容，请重试。",
    "no_ingredients": "未能识别到清晰的食材，请调整角度或光线后重拍。",
    "incomplete": "识别结果不完整，请重新拍摄。",
    "timeout": "AI 响应超时，可能是网络环境不稳定或图片上传受阻，请稍后重试。",
    "unknown": "由于系统繁忙，无法完成识别。",
}

_CREDENTIAL_PATTERN = re.compile(r"api[_\s-]?key|unauthenticated|permission[_\s]denied", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(r"failed to fetch|network|connection (?:refused|reset|error)|connecterror", re.IGNORECASE)
_PARSE_PATTERN = re.compile(r"unexpected token|json", re.IGNORECASE)
_TIMEOUT_PATTERN = re.compile(r"timed?[\s-]?out|超时", re.IGNORECASE)


def _text(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _is_timeout_type(error: BaseException) -> bool:
    return isinstance(error, (AnalysisTimeoutError, asyncio.TimeoutError, httpx.TimeoutException))


@dataclass(frozen=True)
class ClassificationRule:
    """分类规则"""
    name: str
    matches: Callable[[BaseException], bool]
    kind: ErrorKind
    message: Callable[[BaseException], str]


def _fixed(key: str) -> Callable[[BaseException], str]:
    return lambda error: MESSAGES[key]


def _parse_message(error: BaseException) -> str:
    if getattr(error, "empty", False):
        return MESSAGES["empty"]
    return MESSAGES["parse"]


def _validation_message(error: BaseException) -> str:
    if getattr(error, "no_ingredients", False):
        return MESSAGES["no_ingredients"]
    return MESSAGES["incomplete"]


def _rejected_credential(error: BaseException) -> bool:
    if isinstance(error, VisionServiceError) and error.status_code in (401, 403):
        return True
    return bool(_CREDENTIAL_PATTERN.search(_text(error)))


def _network_failure(error: BaseException) -> bool:
    if _is_timeout_type(error):
        return False
    if isinstance(error, (NetworkError, httpx.TransportError, ConnectionError)):
        return True
    return bool(_NETWORK_PATTERN.search(_text(error)))


def _parse_failure(error: BaseException) -> bool:
    if isinstance(error, (ParseError, json.JSONDecodeError)):
        return True
    return bool(_PARSE_PATTERN.search(_text(error)))


def _timeout(error: BaseException) -> bool:
    return _is_timeout_type(error) or bool(_TIMEOUT_PATTERN.search(_text(error)))


DEFAULT_RULES: List[ClassificationRule] = [
    ClassificationRule("missing_credential", lambda e: isinstance(e, ConfigurationError),
                       ErrorKind.CONFIGURATION_ERROR, _fixed("missing_key")),
    ClassificationRule("rejected_credential", _rejected_credential,
                       ErrorKind.CONFIGURATION_ERROR, _fixed("invalid_key")),
    ClassificationRule("network", _network_failure,
                       ErrorKind.NETWORK_ERROR, _fixed("network")),
    ClassificationRule("parse", _parse_failure,
                       ErrorKind.PARSE_ERROR, _parse_message),
    ClassificationRule("validation", lambda e: isinstance(e, ValidationError),
                       ErrorKind.VALIDATION_ERROR, _validation_message),
    ClassificationRule("timeout", _timeout,
                       ErrorKind.TIMEOUT_ERROR, _fixed("timeout")),
]


class ErrorClassifier:
    """错误分类器

    规则表有序、集中管理；不会抛出异常，无法识别的错误一律归为 UNKNOWN_ERROR。
    """

    def __init__(self, rules: Optional[List[ClassificationRule]] = None,
                 log_dir: Optional[str] = "logs"):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.logger = Logger(log_dir)

    def classify(self, error: BaseException) -> ErrorReport:
        """分类异常

        Args:
            error: 任意异常

        Returns:
            ErrorReport
        """
        for rule in self.rules:
            try:
                matched = rule.matches(error)
                message = rule.message(error) if matched else None
            except Exception as e:
                self.logger.log("ai", "warning", f"分类规则 {rule.name} 执行异常: {e}")
                continue

            if matched:
                self.logger.log("ai", "info",
                                f"错误分类: {rule.kind.value} (规则 {rule.name}) <- {type(error).__name__}: {_safe_text(error)}")
                return ErrorReport(kind=rule.kind, message=message, cause=error)

        self.logger.log("ai", "warning", f"未知错误: {type(error).__name__}: {_safe_text(error)}")
        return ErrorReport(kind=ErrorKind.UNKNOWN_ERROR, message=MESSAGES["unknown"], cause=error)


def _safe_text(error: BaseException) -> str:
    try:
        return _text(error)
    except Exception:
        return type(error).__name__
