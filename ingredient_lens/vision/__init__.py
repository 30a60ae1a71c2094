"""
Vision 模块 - 摄像头与拍摄

分层架构：
┌─────────────────────────────────────┐
│     SessionCoordinator (会话层)      │  ← capture() / handle_capture()
├─────────────────────────────────────┤
│     CaptureController (状态机)       │  ← start() / capture() / release()
│     - IDLE / STARTING / STREAMING    │
│     - CAPTURED / ERROR               │
├─────────────────────────────────────┤
│     frame_encoder (编码)             │  ← 缩放 + JPEG 压缩
├─────────────────────────────────────┤
│     CameraDevice (硬件层)            │  ← acquire() / stop()
│     - OpenCVCamera                   │
└─────────────────────────────────────┘
"""

from .camera_device import (
    CameraDevice,
    CameraStream,
    CameraRequest,
    OpenCVCamera,
    OpenCVStream,
    CameraError,
    CameraPermissionError,
    CameraUnavailableError,
    CameraNotPlayingError,
    InsecureContextError,
)

from .frame_encoder import EncodePolicy, encode_frame, reencode_image

from .capture_controller import (
    CaptureController,
    CaptureState,
    camera_error_message,
)

__all__ = [
    # 硬件层
    'CameraDevice',
    'CameraStream',
    'CameraRequest',
    'OpenCVCamera',
    'OpenCVStream',
    'CameraError',
    'CameraPermissionError',
    'CameraUnavailableError',
    'CameraNotPlayingError',
    'InsecureContextError',

    # 编码
    'EncodePolicy',
    'encode_frame',
    'reencode_image',

    # 状态机
    'CaptureController',
    'CaptureState',
    'camera_error_message',
]
