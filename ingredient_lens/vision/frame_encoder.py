"""
截图编码

把视频帧（或上传的图片）缩放到长边上限并压缩为 JPEG，
在识别度和请求体积之间取平衡。质量和尺寸都可以通过配置调整。
"""
import io
from dataclasses import dataclass

import cv2
from PIL import Image, ImageOps


@dataclass(frozen=True)
class EncodePolicy:
    """编码策略"""
    quality: float = 0.7  # JPEG 质量（0-1）
    max_edge: int = 1024  # 长边上限（像素）

    def __post_init__(self):
        if not 0 < self.quality <= 1:
            raise ValueError(f"quality 应在 (0, 1] 范围内: {self.quality}")
        if self.max_edge <= 0:
            raise ValueError(f"max_edge 应为正数: {self.max_edge}")

    @property
    def jpeg_quality(self) -> int:
        return max(1, min(95, int(round(self.quality * 100))))


def encode_frame(frame, policy: EncodePolicy) -> bytes:
    """编码一帧 OpenCV 图像（BGR）

    Args:
        frame: cv2 读取的 BGR ndarray
        policy: 编码策略

    Returns:
        JPEG 字节
    """
    rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    return _encode(Image.fromarray(rgb), policy)


def reencode_image(data: bytes, policy: EncodePolicy) -> bytes:
    """按同样的策略重新编码任意图片（用于上传的照片）

    Raises:
        ValueError: 无法识别的图片数据
    """
    try:
        img = Image.open(io.BytesIO(data))
        img = ImageOps.exif_transpose(img)
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"无法读取图片: {e}") from e

    return _encode(img, policy)


def _encode(img: Image.Image, policy: EncodePolicy) -> bytes:
    if img.mode != "RGB":
        img = img.convert("RGB")

    # 只缩小不放大
    img.thumbnail((policy.max_edge, policy.max_edge), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=policy.jpeg_quality, optimize=True)
    return buffer.getvalue()
