"""
拍摄控制器

管理摄像头生命周期和拍摄状态机：

    IDLE ──start()──▶ STARTING ──首帧就绪──▶ STREAMING ──capture()──▶ CAPTURED
                         │                                              │
                         └──失败──▶ ERROR ◀─┐                 start()──┘
                                     │      │
                                     └start()（重试）

视频流只归本控制器所有：离开 STREAMING / CAPTURED 时以及 release() 时一律释放。
摄像头错误留在 ERROR 状态，不经过 ErrorClassifier。
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ingredient_lens.common import CameraConfig, Logger
from .camera_device import (
    CameraDevice,
    CameraError,
    CameraNotPlayingError,
    CameraPermissionError,
    CameraRequest,
    CameraStream,
    CameraUnavailableError,
    InsecureContextError,
)
from .frame_encoder import EncodePolicy, encode_frame


class CaptureState(Enum):
    """拍摄状态"""
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    CAPTURED = "captured"
    ERROR = "error"


CAMERA_MESSAGES = {
    "permission": "摄像头权限被拒绝，请在设置中开启。",
    "unavailable": "无法访问摄像头设备。",
    "not_playing": "摄像头画面未就绪，请点击重试。",
    "insecure": "识别功能需要 HTTPS 安全连接，请检查部署配置。",
}


def camera_error_message(error: CameraError) -> str:
    """摄像头错误对应的用户提示"""
    if isinstance(error, CameraPermissionError):
        return CAMERA_MESSAGES["permission"]
    if isinstance(error, InsecureContextError):
        return CAMERA_MESSAGES["insecure"]
    if isinstance(error, CameraNotPlayingError):
        return CAMERA_MESSAGES["not_playing"]
    return CAMERA_MESSAGES["unavailable"]


Listener = Callable[[str, 'CaptureController'], None]


class CaptureController:
    """拍摄控制器

    职责：
    1. 摄像头获取：首选配置失败时退回“任意摄像头”
    2. 状态机管理：见模块说明
    3. 拍摄：capture() 只在 STREAMING 且有画面、没有进行中的识别时返回图片
    4. 资源管理：release() 无条件释放视频流

    状态变化和闪光通过 subscribe() 注册的回调通知展示层：
    callback(event, controller)，event 为 "state" 或 "flash"。
    """

    def __init__(self,
                 device: CameraDevice,
                 config: Optional[CameraConfig] = None,
                 secure_context: Callable[[], bool] = lambda: True,
                 log_dir: Optional[str] = "logs"):
        """
        Args:
            device: 摄像头设备
            config: 摄像头配置
            secure_context: 返回当前环境是否允许访问摄像头
            log_dir: 日志目录
        """
        self.device = device
        self.config = config or CameraConfig()
        self.secure_context = secure_context
        self.policy = EncodePolicy(quality=self.config.image_quality,
                                   max_edge=self.config.max_image_edge)
        self.logger = Logger(log_dir)

        self._state = CaptureState.IDLE
        self._stream: Optional[CameraStream] = None
        self._listeners: List[Listener] = []
        self._generation = 0  # 每次 start()/release() 递增，用于丢弃过期的获取结果
        self._in_flight = False
        self.error_message: Optional[str] = None

    # ==================== 状态查询 ====================

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    @property
    def in_flight(self) -> bool:
        """是否有进行中的识别（由 SessionCoordinator 设置）"""
        return self._in_flight

    @in_flight.setter
    def in_flight(self, value: bool):
        self._in_flight = bool(value)

    def get_status(self) -> Dict[str, Any]:
        """获取控制器状态"""
        return {
            "state": self._state.value,
            "error": self.error_message,
            "stream_active": self._stream is not None,
            "in_flight": self._in_flight,
        }

    # ==================== 通知 ====================

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """注册状态回调

        Returns:
            取消注册的函数
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str):
        for callback in list(self._listeners):
            try:
                callback(event, self)
            except Exception as e:
                self.logger.log("camera", "warning", f"状态回调异常: {e}")

    def _set_state(self, state: CaptureState):
        if state == self._state:
            return
        self.logger.log("camera", "info", f"状态切换: {self._state.value} -> {state.value}")
        self._state = state
        self._emit("state")

    # ==================== 启动 ====================

    async def start(self) -> bool:
        """启动（或重新启动）摄像头

        IDLE / CAPTURED / ERROR 都可以启动；STARTING 中重复调用会被忽略，
        STREAMING 时直接返回。

        Returns:
            是否进入 STREAMING
        """
        if self._state == CaptureState.STARTING:
            self.logger.log("camera", "info", "摄像头正在启动，忽略重复请求")
            return False
        if self._state == CaptureState.STREAMING:
            return True

        self._generation += 1
        generation = self._generation
        self._release_stream()
        self.error_message = None
        self._set_state(CaptureState.STARTING)

        if not self.secure_context():
            self._fail(InsecureContextError("当前环境不满足摄像头访问的安全要求"))
            return False

        try:
            stream = await self._acquire()
        except CameraError as e:
            if generation == self._generation:
                self._fail(e)
            return False
        except Exception as e:
            if generation == self._generation:
                self._fail(CameraUnavailableError(f"{type(e).__name__}: {e}"))
            return False

        # 等待期间被 release() 或新的 start() 取代
        if generation != self._generation:
            stream.stop()
            return False

        self._stream = stream
        try:
            ready = await stream.wait_ready(self.config.ready_timeout)
        except Exception as e:
            self.logger.log("camera", "error", f"等待首帧异常: {e}")
            ready = False

        if generation != self._generation:
            stream.stop()
            if self._stream is stream:
                self._stream = None
            return False

        if not ready:
            self._fail(CameraNotPlayingError("摄像头未返回画面"))
            return False

        width, height = stream.dimensions
        self.logger.log("camera", "info", f"摄像头就绪: {width}x{height}")
        self._set_state(CaptureState.STREAMING)
        return True

    async def _acquire(self) -> CameraStream:
        preferred = CameraRequest.preferred(self.config.camera_index, tuple(self.config.resolution))
        try:
            return await self.device.acquire(preferred)
        except CameraPermissionError:
            raise
        except CameraError as e:
            self.logger.log("camera", "warning", f"首选配置失败，尝试任意摄像头: {e}")

        return await self.device.acquire(CameraRequest.any_camera())

    def _fail(self, error: CameraError):
        self._release_stream()
        self.error_message = camera_error_message(error)
        self.logger.log("camera", "error", f"摄像头错误: {type(error).__name__}: {error}")
        self._set_state(CaptureState.ERROR)

    # ==================== 拍摄 ====================

    def capture(self) -> Optional[bytes]:
        """拍摄一张照片

        以下情况不做任何事并返回 None：
        - 状态不是 STREAMING
        - 正在进行识别
        - 画面尺寸为 0

        成功时返回 JPEG 字节，状态切换为 CAPTURED，并释放视频流。
        """
        if self._state != CaptureState.STREAMING or self._stream is None:
            self.logger.log("camera", "info", f"当前状态 {self._state.value}，忽略拍摄")
            return None
        if self._in_flight:
            self.logger.log("camera", "info", "识别进行中，忽略拍摄")
            return None

        width, height = self._stream.dimensions
        if width == 0 or height == 0:
            self.logger.log("camera", "warning", "画面尺寸为 0，忽略拍摄")
            return None

        try:
            frame = self._stream.read_frame()
            if frame is None:
                return None

            self._emit("flash")
            image = encode_frame(frame, self.policy)
        except Exception as e:
            self.logger.log("camera", "error", f"截图异常: {e}")
            return None

        self._release_stream()
        self._set_state(CaptureState.CAPTURED)
        self.logger.log("camera", "info", f"截图成功: {len(image) / 1024:.1f}KB")
        return image

    # ==================== 资源管理 ====================

    def _release_stream(self):
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.stop()

    def release(self):
        """释放摄像头（任意状态下都会停止视频流）"""
        self._generation += 1
        self._release_stream()
        self.error_message = None
        self._set_state(CaptureState.IDLE)
        self.logger.log("camera", "info", "CaptureController 已释放")
