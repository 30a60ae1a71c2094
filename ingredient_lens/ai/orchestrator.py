"""
识别流程编排

每次拍摄只发出一次识别请求，并与整体时限赛跑：
- 识别服务先返回：交给 ResponseValidator 校验
- 时限先到：返回 TimeoutError 报告，迟到的结果直接丢弃（不在传输层取消）
- 任何异常：交给 ErrorClassifier 分类

不做任何自动重试。
"""
import asyncio
import copy
from typing import Awaitable, Callable, Optional, Union

from ingredient_lens.common import Logger
from .ai_config import AIConfig
from .error_classifier import ErrorClassifier
from .errors import AnalysisTimeoutError, ConfigurationError, ErrorReport
from .models import AnalysisRequest, AnalysisResult, RESPONSE_SCHEMA, SYSTEM_INSTRUCTION
from .response_validator import ResponseValidator
from .vision_client import VisionClient

MIN_KEY_LENGTH = 20

PLACEHOLDER_KEYS = {
    "undefined",
    "null",
    "none",
    "placeholder",
    "changeme",
    "your_api_key",
    "your-api-key",
    "your_api_key_here",
    "<your_api_key>",
    "api_key",
    "gemini_api_key",
}


def check_api_key(api_key: Optional[str]) -> Optional[str]:
    """检查 API Key 是否基本可用

    Returns:
        不可用的原因；可用时返回 None
    """
    if api_key is None:
        return "API Key 未配置"

    value = api_key.strip()
    if not value:
        return "API Key 为空"

    lowered = value.lower()
    if lowered in PLACEHOLDER_KEYS or set(lowered) <= {"x", "*", "-", "_"}:
        return "API Key 是占位符"
    if "your" in lowered and "key" in lowered:
        return "API Key 是占位符"

    if len(value) < MIN_KEY_LENGTH:
        return f"API Key 长度不足（{len(value)} < {MIN_KEY_LENGTH}）"

    return None


async def race_deadline(operation: Awaitable, deadline: float,
                        on_late: Optional[Callable[[asyncio.Future], None]] = None):
    """让 operation 与时限赛跑，先结束的一方决定结果

    时限先到时 operation 不会被取消，只是被放弃：
    它之后的结果或异常交给 on_late 处理（仅用于日志），不会再影响调用方。

    Raises:
        AnalysisTimeoutError: 时限先到
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=deadline)

    if task in done:
        return task.result()

    if on_late is not None:
        task.add_done_callback(on_late)
    raise AnalysisTimeoutError(f"analysis deadline of {deadline}s exceeded")


class AnalysisOrchestrator:
    """识别流程编排器

    职责：
    1. 前置检查 API Key（每次调用重新读取，不缓存）
    2. 构建 AnalysisRequest
    3. 识别请求与时限赛跑
    4. 校验结果或分类错误

    analyze() 永远不抛出异常，只返回 AnalysisResult 或 ErrorReport。
    """

    def __init__(self,
                 client,
                 api_key_provider: Callable[[], Optional[str]],
                 deadline: float = 45.0,
                 validator: Optional[ResponseValidator] = None,
                 classifier: Optional[ErrorClassifier] = None,
                 mime_type: str = "image/jpeg",
                 log_dir: Optional[str] = "logs"):
        """
        Args:
            client: 识别服务客户端，需提供 async generate(request, api_key) -> str
            api_key_provider: 返回当前 API Key 的函数
            deadline: 整体时限（秒）
            validator: 结果校验器
            classifier: 错误分类器
            mime_type: 图片 MIME 类型
            log_dir: 日志目录
        """
        self.client = client
        self.api_key_provider = api_key_provider
        self.deadline = deadline
        self.validator = validator or ResponseValidator(log_dir)
        self.classifier = classifier or ErrorClassifier(log_dir=log_dir)
        self.mime_type = mime_type
        self.logger = Logger(log_dir)

    async def analyze(self, image_bytes: bytes) -> Union[AnalysisResult, ErrorReport]:
        """分析一张图片

        Args:
            image_bytes: 编码后的图片

        Returns:
            AnalysisResult 或 ErrorReport
        """
        try:
            api_key = self.api_key_provider()
        except Exception as e:
            return self.classifier.classify(ConfigurationError(f"读取 API Key 失败: {e}"))

        problem = check_api_key(api_key)
        if problem:
            self.logger.log("ai", "error", f"配置错误，跳过识别请求: {problem}")
            return self.classifier.classify(ConfigurationError(problem))

        request = self.build_request(image_bytes)
        started = asyncio.get_running_loop().time()
        self.logger.log("ai", "info", f"开始识别，时限 {self.deadline}s")

        try:
            raw_text = await race_deadline(
                self.client.generate(request, api_key.strip()),
                self.deadline,
                on_late=self._on_late
            )
        except Exception as e:
            elapsed = asyncio.get_running_loop().time() - started
            self.logger.log("ai", "error", f"识别失败（{elapsed:.1f}s）: {type(e).__name__}: {e}")
            return self.classifier.classify(e)

        try:
            result = self.validator.validate(raw_text)
        except Exception as e:
            return self.classifier.classify(e)

        elapsed = asyncio.get_running_loop().time() - started
        self.logger.log("ai", "info", f"识别完成（{elapsed:.1f}s）")
        return result

    def build_request(self, image_bytes: bytes) -> AnalysisRequest:
        """构建单次识别请求"""
        return AnalysisRequest(
            image_bytes=bytes(image_bytes),
            mime_type=self.mime_type,
            instruction_text=SYSTEM_INSTRUCTION,
            response_schema=copy.deepcopy(RESPONSE_SCHEMA)
        )

    def _on_late(self, task: asyncio.Future):
        """超时后才结束的识别请求：只记录，结果丢弃"""
        if task.cancelled():
            self.logger.log("ai", "info", "已放弃的识别请求被取消")
            return

        error = task.exception()
        if error is not None:
            self.logger.log("ai", "info", f"已放弃的识别请求迟到失败（已丢弃）: {type(error).__name__}")
        else:
            self.logger.log("ai", "info", "已放弃的识别请求迟到返回（已丢弃）")


def create_orchestrator(config: AIConfig, client: Optional[VisionClient] = None) -> AnalysisOrchestrator:
    """按配置创建 AnalysisOrchestrator

    Args:
        config: AI 配置
        client: 识别服务客户端（默认按配置创建）

    Returns:
        AnalysisOrchestrator 实例
    """
    if client is None:
        client = VisionClient(
            base_url=config.base_url,
            model=config.model,
            log_dir=config.log_dir
        )

    return AnalysisOrchestrator(
        client=client,
        api_key_provider=config.read_api_key,
        deadline=config.deadline,
        log_dir=config.log_dir
    )
