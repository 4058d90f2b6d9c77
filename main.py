"""
FastAPI应用主入口

uvicorn main:app
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestContextMiddleware
from api.routes import orders
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger
from core.response import success_response
from infrastructure.database import create_tables, engine


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 开发环境自动建表；其他环境执行 alembic upgrade head
    if settings.DEBUG:
        await create_tables()
        logger.info("database_tables_created", url=engine.url.render_as_string(hide_password=True))
    else:
        logger.info("database_migrations_required", message="Run 'alembic upgrade head' before serving traffic")
    logger.info("application_started", environment=settings.ENVIRONMENT, version=settings.VERSION)
    yield
    await engine.dispose()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="地陪预订订单服务：订单生命周期、金额计算与退款政策",
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(orders.router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        return success_response(data={"status": "healthy"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
