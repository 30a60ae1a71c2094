"""
摄像头设备（硬件层）

约定：
- CameraDevice.acquire(request) -> CameraStream，失败抛出 CameraError
- CameraStream.wait_ready()：首帧可用信号
- CameraStream.dimensions：截图前可查询画面尺寸
- CameraStream.stop()：释放设备

OpenCVCamera 是基于 cv2.VideoCapture 的实现；阻塞调用放到线程中执行，
状态只在事件循环里修改。
"""
import asyncio
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import cv2

from ingredient_lens.common import Logger


# ==================== 错误类型 ====================

class CameraError(Exception):
    """摄像头错误基类"""


class CameraPermissionError(CameraError):
    """摄像头权限被拒绝"""


class CameraUnavailableError(CameraError):
    """找不到或无法打开摄像头"""


class CameraNotPlayingError(CameraError):
    """摄像头已打开但没有画面"""


class InsecureContextError(CameraError):
    """运行环境不满足摄像头访问的安全要求"""


# ==================== 设备约定 ====================

@dataclass(frozen=True)
class CameraRequest:
    """摄像头请求参数

    index / facing_mode / 分辨率为 None 时表示“任意摄像头”。
    """
    index: Optional[int] = None
    facing_mode: Optional[str] = None  # "environment"（后置）/ "user"（前置）
    width: Optional[int] = None
    height: Optional[int] = None

    @classmethod
    def preferred(cls, index: int = 0, resolution: Tuple[int, int] = (1280, 720)) -> 'CameraRequest':
        width, height = resolution
        return cls(index=index, facing_mode="environment", width=width, height=height)

    @classmethod
    def any_camera(cls) -> 'CameraRequest':
        return cls()

    @property
    def is_minimal(self) -> bool:
        return self.index is None and self.facing_mode is None and self.width is None and self.height is None


class CameraStream(ABC):
    """已打开的视频流"""

    @property
    @abstractmethod
    def dimensions(self) -> Tuple[int, int]:
        """当前画面尺寸 (width, height)，未就绪时为 (0, 0)"""

    @abstractmethod
    async def wait_ready(self, timeout: float) -> bool:
        """等待首帧可用"""

    @abstractmethod
    def read_frame(self):
        """读取最新一帧（BGR ndarray），失败返回 None"""

    @abstractmethod
    def stop(self):
        """停止视频流并释放设备"""


class CameraDevice(ABC):
    """摄像头设备"""

    @abstractmethod
    async def acquire(self, request: CameraRequest) -> CameraStream:
        """打开摄像头

        Raises:
            CameraError: 打开失败
        """


# ==================== OpenCV 实现 ====================

class OpenCVStream(CameraStream):
    """基于 cv2.VideoCapture 的视频流

    cv2.VideoCapture 不是线程安全的：首帧等待在工作线程中读取，stop() 在事件循环中释放，
    所有对 cap 的访问都在 cap_lock 内进行。
    """

    def __init__(self, cap: cv2.VideoCapture, index: int, log_dir: Optional[str] = "logs"):
        self.cap = cap
        self.index = index
        self.logger = Logger(log_dir)
        self.cap_lock = threading.Lock()
        self._last_shape: Optional[Tuple[int, int]] = None

    @property
    def dimensions(self) -> Tuple[int, int]:
        with self.cap_lock:
            if self.cap is None or not self.cap.isOpened():
                return (0, 0)
            if self._last_shape:
                return self._last_shape
            width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
            height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
            return (width, height)

    async def wait_ready(self, timeout: float) -> bool:
        return await asyncio.to_thread(self._wait_first_frame, timeout)

    def _wait_first_frame(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self.cap_lock:
                # stop() 可能已在事件循环中释放
                if self.cap is None:
                    return False
                ret, frame = self.cap.read()
                if ret and frame is not None:
                    height, width = frame.shape[:2]
                    self._last_shape = (width, height)
                    return True
            # 释放锁后等待，避免阻塞 stop()
            time.sleep(0.05)
        return False

    def read_frame(self):
        with self.cap_lock:
            if self.cap is None or not self.cap.isOpened():
                return None

            # 清空缓冲区：读取并丢弃2帧，拿到最新画面
            for _ in range(2):
                self.cap.read()

            ret, frame = self.cap.read()
            if not ret or frame is None:
                self.logger.log("camera", "error", "无法从摄像头读取图像")
                return None

            height, width = frame.shape[:2]
            self._last_shape = (width, height)
            return frame

    def stop(self):
        with self.cap_lock:
            if self.cap is None:
                return
            cap, self.cap = self.cap, None
            self._last_shape = None
            cap.release()
        self.logger.log("camera", "info", f"摄像头已释放 (索引: {self.index})")


class OpenCVCamera(CameraDevice):
    """OpenCV 摄像头设备

    - 指定索引：只尝试该索引，并设置分辨率
    - 任意摄像头：依次探测 probe_indexes
    OpenCV 无法区分前后摄像头，facing_mode 只作为日志信息。
    """

    def __init__(self, probe_indexes: Sequence[int] = (0, 1, 2, 3, 4, 5),
                 log_dir: Optional[str] = "logs"):
        self.probe_indexes = tuple(probe_indexes)
        self.log_dir = log_dir
        self.logger = Logger(log_dir)

    async def acquire(self, request: CameraRequest) -> CameraStream:
        return await asyncio.to_thread(self._open, request)

    def _open(self, request: CameraRequest) -> CameraStream:
        if request.index is not None:
            cap = self._try_index(request.index)
            if cap is None:
                raise CameraUnavailableError(f"无法打开摄像头 (索引: {request.index})")

            if request.width and request.height:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, request.width)
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, request.height)
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

            self.logger.log("camera", "info",
                            f"摄像头打开成功 - 索引: {request.index}, 朝向: {request.facing_mode}, "
                            f"分辨率: {request.width}x{request.height}")
            return OpenCVStream(cap, request.index, self.log_dir)

        # 自动检测可用摄像头
        for idx in self.probe_indexes:
            cap = self._try_index(idx)
            if cap is not None:
                self.logger.log("camera", "info", f"检测到可用摄像头: 索引 {idx}")
                return OpenCVStream(cap, idx, self.log_dir)

        raise CameraUnavailableError("未找到可用的摄像头")

    @staticmethod
    def _try_index(index: int) -> Optional[cv2.VideoCapture]:
        cap = cv2.VideoCapture(index)
        if cap.isOpened():
            return cap
        cap.release()
        return None
