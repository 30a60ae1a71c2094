"""
会话协调器

把 CaptureController 和 AnalysisOrchestrator 串起来，
并保存最近一次的结果（AnalysisResult 或 ErrorReport，二者只存其一）。
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from ingredient_lens.common import Logger
from ingredient_lens.ai import AnalysisOrchestrator, AnalysisResult, ErrorReport
from ingredient_lens.vision import CaptureController, CaptureState


@dataclass
class SessionStatus:
    """会话状态"""
    is_processing: bool = False
    result: Optional[AnalysisResult] = None
    error: Optional[ErrorReport] = None
    captures_processed: int = 0


Outcome = Union[AnalysisResult, ErrorReport]


class SessionCoordinator:
    """会话协调器

    职责：
    1. 一次拍摄驱动一次完整识别：handle_capture()
    2. 保存唯一的识别结果或错误
    3. 防止重入：识别进行中时拒绝新的 handle_capture()
    4. 重置：reset() 清空结果并重新启动摄像头；重置前发出的识别即使稍后完成，结果也会被丢弃

    识别失败后（摄像头处于 CAPTURED）会重新启动摄像头，方便用户重拍；
    这不是自动重试识别。
    """

    def __init__(self,
                 controller: CaptureController,
                 orchestrator: AnalysisOrchestrator,
                 rearm_on_error: bool = True,
                 log_dir: Optional[str] = "logs"):
        """
        Args:
            controller: 拍摄控制器
            orchestrator: 识别流程编排器
            rearm_on_error: 识别失败后是否重新启动摄像头
            log_dir: 日志目录
        """
        self.controller = controller
        self.orchestrator = orchestrator
        self.rearm_on_error = rearm_on_error
        self.logger = Logger(log_dir)

        self.status = SessionStatus()
        self._epoch = 0  # reset() 递增；识别完成时 epoch 已变化则丢弃结果
        self._listeners: List[Callable[['SessionCoordinator'], None]] = []

        self.logger.log("session", "info", "SessionCoordinator 初始化")

    # ==================== 状态 ====================

    @property
    def is_processing(self) -> bool:
        return self.status.is_processing

    @property
    def result(self) -> Optional[AnalysisResult]:
        return self.status.result

    @property
    def error(self) -> Optional[ErrorReport]:
        return self.status.error

    def snapshot(self) -> Dict[str, Any]:
        """展示层使用的状态快照"""
        return {
            "isProcessing": self.status.is_processing,
            "result": self.status.result.to_dict() if self.status.result else None,
            "error": self.status.error.to_dict() if self.status.error else None,
        }

    def subscribe(self, callback: Callable[['SessionCoordinator'], None]) -> Callable[[], None]:
        """注册状态变化回调

        Returns:
            取消注册的函数
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                self.logger.log("session", "warning", f"状态回调异常: {e}")

    # ==================== 核心流程 ====================

    async def handle_capture(self, image_bytes: bytes) -> Optional[Outcome]:
        """处理一张照片（核心业务流程）

        流程：
        1. 设置处理中标记，清除上一次的错误
        2. 调用 AnalysisOrchestrator
        3. 保存结果或错误（只保存其一）；期间发生过 reset() 则丢弃
        4. 清除处理中标记

        Args:
            image_bytes: 编码后的图片

        Returns:
            本次的 AnalysisResult / ErrorReport；正在处理时返回 None
        """
        if self.status.is_processing:
            self.logger.log("session", "warning", "识别进行中，忽略新的拍摄")
            return None

        epoch = self._epoch
        self.status.is_processing = True
        self.status.error = None
        self.controller.in_flight = True
        self._notify()

        self.logger.log("session", "info", f"开始处理照片: {len(image_bytes) / 1024:.1f}KB")

        outcome: Optional[Outcome] = None
        try:
            try:
                outcome = await self.orchestrator.analyze(image_bytes)
            except Exception as e:
                outcome = self.orchestrator.classifier.classify(e)

            if epoch != self._epoch:
                self.logger.log("session", "info", "会话已重置，丢弃过期的识别结果")
            else:
                self._store(outcome)
        finally:
            self.status.is_processing = False
            self.controller.in_flight = False
            self._notify()

        if (isinstance(outcome, ErrorReport) and self.rearm_on_error and epoch == self._epoch
                and self.controller.state == CaptureState.CAPTURED):
            await self.controller.start()

        return outcome

    def _store(self, outcome: Outcome):
        """保存本次结果（结果与错误只存其一）"""
        if isinstance(outcome, ErrorReport):
            self.status.result = None
            self.status.error = outcome
            self.logger.log("session", "error",
                            f"识别失败: {outcome.kind.value} - {outcome.message}")
        else:
            self.status.result = outcome
            self.status.error = None
            self.logger.log("session", "info",
                            f"识别成功: {[item.name for item in outcome.ingredients]}")

        self.status.captures_processed += 1

    async def capture(self) -> Optional[Outcome]:
        """从摄像头拍摄并识别

        Returns:
            本次的 AnalysisResult / ErrorReport；没有拍到照片时返回 None
        """
        if self.status.is_processing:
            self.logger.log("session", "warning", "识别进行中，忽略拍摄")
            return None

        image = self.controller.capture()
        if image is None:
            return None

        return await self.handle_capture(image)

    async def reset(self) -> bool:
        """清空结果和错误，并重新启动摄像头

        进行中的识别不会被取消，但它的结果不会再写入会话。

        Returns:
            摄像头是否进入 STREAMING
        """
        self._epoch += 1
        self.status.result = None
        self.status.error = None
        self.logger.log("session", "info", "会话已重置")
        self._notify()

        return await self.controller.start()

    def shutdown(self):
        """关闭会话（释放摄像头）"""
        self.logger.log("session", "info", "SessionCoordinator 关闭")
        self.controller.release()
