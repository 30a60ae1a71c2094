"""
Web Application - Ingredient Lens

使用 aiohttp 提供 JSON API，展示层通过这些接口读取会话状态：
{isProcessing, result, error} 以及摄像头状态。
"""
import asyncio
import contextvars
import sys
from typing import Optional

from aiohttp import web

from ingredient_lens.common import Config, Logger
from ingredient_lens.ai import AIConfig, create_orchestrator
from ingredient_lens.vision import CaptureController, EncodePolicy, OpenCVCamera, reencode_image
from ingredient_lens.session import SessionCoordinator

COORDINATOR_KEY = web.AppKey("coordinator", SessionCoordinator)
CONFIG_KEY = web.AppKey("config", Config)
LOGGER_KEY = web.AppKey("logger", Logger)

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")

# 当前请求是否来自安全环境。aiohttp 为每个请求单独建任务，
# 所以识别结束后的摄像头重启读到的仍是触发它的那个请求。
SECURE_REQUEST: contextvars.ContextVar[bool] = contextvars.ContextVar("secure_request", default=False)


def _is_secure_request(request: web.Request) -> bool:
    """HTTPS 或本机访问视为安全环境"""
    if request.secure:
        return True
    return request.url.host in LOCAL_HOSTS


@web.middleware
async def secure_context_middleware(request: web.Request, handler):
    """记录当前请求是否来自安全环境（供摄像头启动检查）"""
    token = SECURE_REQUEST.set(_is_secure_request(request))
    try:
        return await handler(request)
    finally:
        SECURE_REQUEST.reset(token)


def request_is_secure() -> bool:
    """当前请求是否来自安全环境；请求之外调用返回 False"""
    return SECURE_REQUEST.get()


def init_services(config: Config) -> SessionCoordinator:
    """初始化所有服务"""
    log_dir = str(config.log_dir)

    # 1. 识别流程
    orchestrator = create_orchestrator(AIConfig.from_env(log_dir=log_dir))

    # 2. 摄像头
    def secure_context() -> bool:
        if not config.web.require_secure_context:
            return True
        return request_is_secure()

    controller = CaptureController(
        device=OpenCVCamera(probe_indexes=config.camera.fallback_indexes, log_dir=log_dir),
        config=config.camera,
        secure_context=secure_context,
        log_dir=log_dir
    )

    # 3. 会话
    return SessionCoordinator(controller, orchestrator, log_dir=log_dir)


# ==================== API ====================

def _state_payload(coordinator: SessionCoordinator) -> dict:
    return {
        "success": True,
        **coordinator.snapshot(),
        "camera": coordinator.controller.get_status(),
    }


async def get_state(request: web.Request) -> web.Response:
    """获取会话状态"""
    return web.json_response(_state_payload(request.app[COORDINATOR_KEY]))


async def start_camera(request: web.Request) -> web.Response:
    """启动（或重试启动）摄像头"""
    coordinator = request.app[COORDINATOR_KEY]
    streaming = await coordinator.controller.start()

    return web.json_response({
        "success": streaming,
        "message": "摄像头已启动" if streaming else (coordinator.controller.error_message or "摄像头启动中"),
        "camera": coordinator.controller.get_status(),
    })


async def capture(request: web.Request) -> web.Response:
    """拍摄并识别"""
    coordinator = request.app[COORDINATOR_KEY]
    outcome = await coordinator.capture()

    if outcome is None:
        return web.json_response({
            "success": False,
            "message": "当前无法拍摄",
            **coordinator.snapshot(),
        }, status=409)

    return web.json_response(_state_payload(coordinator))


async def analyze_upload(request: web.Request) -> web.Response:
    """识别上传的照片（请求体为图片原始字节）"""
    coordinator = request.app[COORDINATOR_KEY]
    config = request.app[CONFIG_KEY]

    body = await request.read()
    if not body:
        return web.json_response({"success": False, "message": "请求中没有图片"}, status=400)

    policy = EncodePolicy(quality=config.camera.image_quality, max_edge=config.camera.max_image_edge)
    try:
        image = await asyncio.to_thread(reencode_image, body, policy)
    except ValueError as e:
        request.app[LOGGER_KEY].log("web", "warning", f"上传图片无效: {e}")
        return web.json_response({"success": False, "message": "无法识别的图片格式"}, status=400)

    outcome = await coordinator.handle_capture(image)
    if outcome is None:
        return web.json_response({
            "success": False,
            "message": "识别进行中，请稍候",
            **coordinator.snapshot(),
        }, status=409)

    return web.json_response(_state_payload(coordinator))


async def reset(request: web.Request) -> web.Response:
    """清空结果并重新启动摄像头"""
    coordinator = request.app[COORDINATOR_KEY]
    await coordinator.reset()
    return web.json_response(_state_payload(coordinator))


async def on_shutdown(app: web.Application):
    """关闭时释放摄像头"""
    app[COORDINATOR_KEY].shutdown()
    app[LOGGER_KEY].log("web", "info", "摄像头已关闭")


def create_app(coordinator: SessionCoordinator, config: Optional[Config] = None) -> web.Application:
    """创建 aiohttp 应用

    Args:
        coordinator: 会话协调器
        config: 全局配置

    Returns:
        web.Application
    """
    config = config or Config()

    app = web.Application(middlewares=[secure_context_middleware],
                          client_max_size=20 * 1024 * 1024)
    app[COORDINATOR_KEY] = coordinator
    app[CONFIG_KEY] = config
    app[LOGGER_KEY] = Logger(config.log_dir)

    app.on_shutdown.append(on_shutdown)
    app.router.add_get("/api/state", get_state)
    app.router.add_post("/api/camera/start", start_camera)
    app.router.add_post("/api/capture", capture)
    app.router.add_post("/api/analyze", analyze_upload)
    app.router.add_post("/api/reset", reset)
    return app


# ==================== 启动命令 ====================

async def serve(config: Config):
    """启动服务器"""
    logger = Logger(config.log_dir)
    coordinator = init_services(config)
    app = create_app(coordinator, config)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.web.host, config.web.port)

    try:
        await site.start()
        logger.log("web", "info", f"服务器已启动: http://{config.web.host}:{config.web.port}")
        await asyncio.Future()
    finally:
        await runner.cleanup()


def main():
    """主函数"""
    config = Config()
    try:
        if sys.platform == "win32":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        print("\n[Web] 服务器已停止")


if __name__ == '__main__':
    main()
