"""
Main application entry point for Sage Relay - moderated two-person conversations.
"""
# 必须在导入 settings 之前加载 .env
from dotenv import load_dotenv

load_dotenv()

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sage_relay import __version__
from sage_relay.api.health import router as health_router
from sage_relay.api.websocket import router as websocket_router
from sage_relay.channels.websocket_hub import WebSocketHub
from sage_relay.config.settings import Settings, get_settings
from sage_relay.services.event_router import SessionEventRouter
from sage_relay.services.facilitator_responder import FacilitatorResponder
from sage_relay.services.generation_client import GenerationClient, HttpGenerationClient
from sage_relay.services.session_lifecycle import SessionLifecycle
from sage_relay.services.task_scheduler import DeferredTaskScheduler
from sage_relay.storage.memory_storage import MemorySessionStore

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(settings: Settings) -> None:
    """配置日志：控制台输出，配置了 LOG_FILE 时同时写文件"""
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=handlers
    )


def create_app(
    settings: Optional[Settings] = None,
    generation_client: Optional[GenerationClient] = None
) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        settings: 配置（默认读取环境变量）
        generation_client: 生成服务客户端（默认按配置创建 HttpGenerationClient）
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("Starting Sage Relay...")

        store = MemorySessionStore()
        hub = WebSocketHub(send_timeout=settings.WS_SEND_TIMEOUT)
        scheduler = DeferredTaskScheduler()
        client = generation_client or HttpGenerationClient.from_settings(settings)
        if not client.is_configured():
            logger.warning("⚠️  Generation API key not set, facilitator will use fallback replies")

        responder = FacilitatorResponder.from_settings(settings, client, hub, scheduler, store)
        lifecycle = SessionLifecycle.from_settings(settings, store, hub, responder)

        app.state.settings = settings
        app.state.store = store
        app.state.hub = hub
        app.state.scheduler = scheduler
        app.state.generation_client = client
        app.state.lifecycle = lifecycle
        app.state.event_router = SessionEventRouter(
            lifecycle, hub, max_message_length=settings.MAX_MESSAGE_LENGTH
        )

        logger.info(f"✅ {settings.FACILITATOR_NAME} facilitator ready ({settings.GENERATION_PROVIDER})")
        logger.info("Application startup complete")

        yield

        # 关闭时清理
        logger.info("Shutting down...")
        await scheduler.shutdown()
        store.clear()
        await client.aclose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Sage Relay",
        version=__version__,
        description="Real-time two-person conversations with an automated facilitator",
        lifespan=lifespan
    )

    # 配置CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(websocket_router)

    # 全局异常处理
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "message": "Welcome to Sage Relay",
            "version": __version__,
            "websocket": "/ws"
        }

    return app


app = create_app()


def main():
    """命令行入口"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
