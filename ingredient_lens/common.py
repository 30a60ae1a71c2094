"""
通用工具类

- .env 加载
- Logger：控制台 + JSON 行日志文件
- Config：从环境变量读取的全局配置
"""
import os
import json
from pathlib import Path
from datetime import datetime
from dotenv import load_dotenv
from dataclasses import dataclass

# 项目根目录
BASE_DIR = Path(__file__).parent.parent

# 加载 .env 文件（不覆盖已存在的环境变量）
load_dotenv(os.path.join(BASE_DIR, '.env'))


class Logger:
    """简单日志工具"""

    def __init__(self, log_dir):
        self.log_dir = Path(log_dir) if log_dir else None

    def log(self, module: str, level: str, message: str, **kwargs):
        """记录日志"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry = {
            "timestamp": timestamp,
            "module": module,
            "level": level,
            "message": message,
            **kwargs
        }

        # 输出到控制台
        print(f"[{timestamp}] [{module}] {level}: {message}")

        # 输出到文件（可选）
        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_file = self.log_dir / f"{datetime.now().strftime('%Y%m%d')}.log"
            try:
                with open(log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
            except OSError as e:
                print(f"写入日志失败: {e}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class CameraConfig:
    """摄像头配置"""
    camera_index: int = 0
    resolution: tuple = (1280, 720)  # 首选分辨率
    fallback_indexes: tuple = (0, 1, 2, 3, 4, 5)  # 首选配置失败后依次尝试的索引
    ready_timeout: float = 5.0  # 等待首帧（秒）
    image_quality: float = 0.7  # JPEG 压缩质量（0-1）
    max_image_edge: int = 1024  # 长边上限（像素）


@dataclass
class WebConfig:
    """Web 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    require_secure_context: bool = False


class Config:
    """全局配置类

    API Key 不在这里缓存：每次分析时由 AnalysisOrchestrator 重新读取。
    """

    def __init__(self):
        # 摄像头配置
        self.camera = CameraConfig(
            camera_index=_env_int("CAMERA_INDEX", 0),
            resolution=tuple(map(int, os.getenv("RESOLUTION", "1280,720").split(","))),
            ready_timeout=_env_float("CAMERA_READY_TIMEOUT", 5.0),
            image_quality=_env_float("IMAGE_QUALITY", 0.7),
            max_image_edge=_env_int("MAX_IMAGE_EDGE", 1024)
        )

        # Web 配置
        self.web = WebConfig(
            host=os.getenv("WEB_HOST", "0.0.0.0"),
            port=_env_int("WEB_PORT", 8080),
            require_secure_context=os.getenv("REQUIRE_SECURE_CONTEXT", "false").lower() in ("true", "1", "yes")
        )

        # 项目路径
        self.log_dir = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))
