import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

from peertrack.api.v1 import manuscripts, notifications, users
from peertrack.core.config import AppConfig
from peertrack.core.middleware import ExceptionHandlerMiddleware, register_exception_handlers
from peertrack.core.sentry_init import init_sentry
from peertrack.lib.api_client import build_supabase_client
from peertrack.services.manuscript_workflow import ManuscriptLocks

logger = logging.getLogger("peertrack")


def create_app(config: AppConfig | None = None, *, supabase_client=None) -> FastAPI:
    """
    构造 FastAPI 应用。

    中文注释:
    - 配置对象在这里构造一次并挂到 app.state，各 service 通过依赖注入拿到它；
    - 测试可直接传入 AppConfig 与 fake client。
    """
    config = config or AppConfig.from_env()

    sentry_enabled = False
    try:
        sentry_enabled = init_sentry()
    except Exception as e:
        # 零崩溃原则：Sentry 任何异常不得阻塞启动
        logger.warning("[sentry] init failed (ignored): %s", e)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("PeerTrack API starting (env=%s)", config.env)
        yield

    app = FastAPI(
        title="PeerTrack API",
        description="Manuscript peer-review workflow tracker",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.supabase = supabase_client if supabase_client is not None else build_supabase_client(config)
    app.state.locks = ManuscriptLocks() if config.serialize_manuscript_writes else None

    if sentry_enabled:
        try:
            from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

            app.add_middleware(SentryAsgiMiddleware)
        except Exception as e:
            logger.warning("[sentry] middleware attach failed (ignored): %s", e)

    # === 中间件配置 ===
    # 1. 跨域资源共享 (CORS) - 允许前端访问
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.frontend_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 2. 统一异常处理
    app.add_middleware(ExceptionHandlerMiddleware, expose_errors=config.expose_errors)
    register_exception_handlers(app)

    # === 路由注册 ===
    app.include_router(manuscripts.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {"success": True, "message": "PeerTrack API is running", "data": {"docs": "/docs"}}

    return app


app = create_app()
