"""
识别服务客户端

基于 Gemini generateContent REST 接口的图像识别调用
"""
import base64
from typing import Any, Dict, Optional

import httpx

from ingredient_lens.common import Logger
from .errors import ParseError, VisionServiceError
from .models import AnalysisRequest, USER_PROMPT


class VisionClient:
    """识别服务客户端

    职责：
    1. 封装 generateContent 调用
    2. 处理图片编码（base64）
    3. 提取返回的文本

    设计原则：
    - 无状态：不保存分析历史
    - 不重试：失败直接抛出，由上层分类
    - 不处理超时：整体时限由 AnalysisOrchestrator 控制
    """

    def __init__(self, base_url: str, model: str,
                 http_client: Optional[httpx.AsyncClient] = None,
                 transport_timeout: Optional[float] = 120.0,
                 log_dir: Optional[str] = "logs"):
        """
        Args:
            base_url: API 基础 URL
            model: 模型名称
            http_client: 外部传入的 httpx.AsyncClient（测试时可注入 MockTransport）
            transport_timeout: 传输层超时（秒），应大于整体分析时限
            log_dir: 日志目录
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.http_client = http_client
        self.transport_timeout = transport_timeout
        self.logger = Logger(log_dir)

    async def generate(self, request: AnalysisRequest, api_key: str) -> str:
        """发送识别请求

        Args:
            request: 识别请求
            api_key: 本次调用使用的 API Key

        Returns:
            识别服务返回的原始文本

        Raises:
            VisionServiceError: 服务返回错误响应
            ParseError: 服务未返回任何文本
            httpx.TransportError: 网络失败
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json"
        }
        body = self._build_body(request)

        self.logger.log("ai", "info",
                        f"发送识别请求: model={self.model}, 图片 {len(request.image_bytes) / 1024:.1f}KB")

        if self.http_client is not None:
            response = await self.http_client.post(url, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.transport_timeout) as client:
                response = await client.post(url, json=body, headers=headers)

        if response.is_error:
            raise VisionServiceError(self._error_message(response), status_code=response.status_code)

        text = self._extract_text(response.json())
        if not text:
            raise ParseError("empty payload: AI 未能识别到有效内容", empty=True)

        self.logger.log("ai", "info", f"识别服务返回 {len(text)} 字符")
        return text

    def _build_body(self, request: AnalysisRequest) -> Dict[str, Any]:
        image_base64 = base64.b64encode(request.image_bytes).decode("utf-8")

        return {
            "contents": [
                {
                    "parts": [
                        {
                            "inline_data": {
                                "mime_type": request.mime_type,
                                "data": image_base64
                            }
                        },
                        {
                            "text": USER_PROMPT
                        }
                    ]
                }
            ],
            "systemInstruction": {
                "parts": [{"text": request.instruction_text}]
            },
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": request.response_schema
            }
        }

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""

        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
            message = error.get("message")
        except (ValueError, AttributeError):
            message = None

        return message or f"HTTP {response.status_code}: {response.text[:200]}"
