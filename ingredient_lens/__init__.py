"""
Ingredient Lens

拍摄食材照片，识别食材、营养信息并推荐食谱：
- ai: 识别流程（请求、校验、错误分类）
- vision: 摄像头与拍摄状态机
- session: 会话协调
- web: JSON API
"""

__version__ = "0.1.0"
