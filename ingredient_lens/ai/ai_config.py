"""
AI 服务配置类
"""
import os
from dataclasses import dataclass
from typing import Optional

from ingredient_lens.common import Logger

# 整体分析时限允许的范围（秒）
MIN_DEADLINE = 35.0
MAX_DEADLINE = 45.0
DEFAULT_DEADLINE = 45.0


def parse_deadline(value: Optional[str], logger: Optional[Logger] = None) -> float:
    """解析 ANALYSIS_TIMEOUT，超出范围时截断到 [MIN_DEADLINE, MAX_DEADLINE]

    Args:
        value: 环境变量原始值
        logger: 日志记录器

    Returns:
        时限（秒）
    """
    if value is None or value.strip() == "":
        return DEFAULT_DEADLINE

    try:
        deadline = float(value)
    except ValueError:
        if logger:
            logger.log("ai", "warning", f"ANALYSIS_TIMEOUT 无效: {value!r}，使用默认值 {DEFAULT_DEADLINE}")
        return DEFAULT_DEADLINE

    if deadline != deadline:  # NaN
        clamped = DEFAULT_DEADLINE
    else:
        clamped = min(max(deadline, MIN_DEADLINE), MAX_DEADLINE)

    if clamped != deadline and logger:
        logger.log("ai", "warning",
                   f"ANALYSIS_TIMEOUT={value} 超出范围 {MIN_DEADLINE:g}-{MAX_DEADLINE:g} 秒，已调整为 {clamped:g}")
    return clamped


@dataclass
class AIConfig:
    """AI 服务配置对象

    统一管理识别服务的配置。API Key 本身不保存在这里，
    只保存它所在的环境变量名，每次分析时重新读取。
    """
    # Gemini API 配置
    api_key_env: str = "GEMINI_API_KEY"  # API Key 所在的环境变量
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-3-flash-preview"

    # 超时配置
    deadline: float = DEFAULT_DEADLINE  # 整体分析时限（秒）

    # 语言
    locale: str = "zh-CN"

    # 日志配置
    log_dir: str = "logs"

    @classmethod
    def from_env(cls, log_dir: str = "logs") -> 'AIConfig':
        """从环境变量创建配置"""
        deadline = parse_deadline(os.getenv("ANALYSIS_TIMEOUT"), Logger(log_dir))

        return cls(
            api_key_env=os.getenv("API_KEY_ENV", "GEMINI_API_KEY"),
            base_url=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            model=os.getenv("GEMINI_MODEL", "gemini-3-flash-preview"),
            deadline=deadline,
            log_dir=log_dir
        )

    def read_api_key(self) -> str:
        """读取当前进程环境中的 API Key（不缓存）"""
        return os.getenv(self.api_key_env, "")
