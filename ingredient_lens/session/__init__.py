"""
Session 模块 - 会话协调

┌─────────────────────────────────────────────────┐
│        SessionCoordinator (会话协调)             │
├─────────────────────────────────────────────────┤
│  - capture() / handle_capture()                 │
│  - reset()                                      │
│  - snapshot(): isProcessing / result / error    │
├─────────────────────────────────────────────────┤
│  CaptureController      AnalysisOrchestrator    │
└─────────────────────────────────────────────────┘
"""

from .session_coordinator import SessionCoordinator, SessionStatus

__all__ = [
    'SessionCoordinator',
    'SessionStatus',
]
