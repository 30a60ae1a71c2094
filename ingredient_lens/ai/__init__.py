"""
AI 模块 - 食材识别流程

架构：
┌─────────────────────────────────────┐
│   AnalysisOrchestrator (流程编排)    │  ← API Key 检查、时限赛跑
├─────────────────────────────────────┤
│  VisionClient        → 识别服务调用  │
│  ResponseValidator   → 结果校验      │
│  ErrorClassifier     → 错误分类      │
├─────────────────────────────────────┤
│  AIConfig (配置层)                   │  ← 模型、时限、API Key 环境变量名
└─────────────────────────────────────┘

使用示例：
```python
from ingredient_lens.ai import AIConfig, create_orchestrator

orchestrator = create_orchestrator(AIConfig.from_env())
outcome = await orchestrator.analyze(jpeg_bytes)
# AnalysisResult 或 ErrorReport
```
"""

from .ai_config import AIConfig
from .errors import (
    ErrorKind,
    ErrorReport,
    AnalysisError,
    ConfigurationError,
    NetworkError,
    ParseError,
    ValidationError,
    AnalysisTimeoutError,
    VisionServiceError,
)
from .models import AnalysisRequest, AnalysisResult, Ingredient, Recipe
from .response_validator import ResponseValidator, strip_fences
from .error_classifier import ErrorClassifier, ClassificationRule
from .vision_client import VisionClient
from .orchestrator import AnalysisOrchestrator, create_orchestrator, check_api_key, race_deadline

__all__ = [
    # 配置
    'AIConfig',

    # 数据模型
    'AnalysisRequest',
    'AnalysisResult',
    'Ingredient',
    'Recipe',

    # 错误
    'ErrorKind',
    'ErrorReport',
    'AnalysisError',
    'ConfigurationError',
    'NetworkError',
    'ParseError',
    'ValidationError',
    'AnalysisTimeoutError',
    'VisionServiceError',

    # 组件
    'ResponseValidator',
    'strip_fences',
    'ErrorClassifier',
    'ClassificationRule',
    'VisionClient',
    'AnalysisOrchestrator',
    'create_orchestrator',
    'check_api_key',
    'race_deadline',
]
