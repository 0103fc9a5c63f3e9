"""
Carmarket Chat - FastAPI Application

판매자/구매자 1:1 채팅: 채팅방 확인, 메시지 전송/조회, 읽음/삭제, 입력중 표시,
그리고 채팅방/받은편지함 변경을 SSE 로 내보내는 서비스
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from carmarket.api import chat_room, health, message, stream, typing
from carmarket.core.config import settings
from carmarket.core.logging import get_logger, setup_logging
from carmarket.database import close_databases, init_databases
from carmarket.middleware.error_handler import ErrorHandlerMiddleware, create_http_exception_handler
from carmarket.middleware.logging_middleware import LoggingMiddleware
from carmarket.realtime.feed import RealtimeFeed

logger = get_logger(__name__)

ROUTERS = (health.router, chat_room.router, message.router, typing.router, stream.router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(log_to_files=not settings.debug)
    logger.info(f"{settings.app_name} {settings.version} starting")

    await init_databases()
    app.state.feed = RealtimeFeed()
    try:
        yield
    finally:
        logger.info(f"{settings.app_name} shutting down")
        # SSE 구독을 먼저 닫고 연결 정리
        await app.state.feed.close()
        await close_databases()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    # add_middleware 는 역순으로 감싸므로 CORS 가 가장 바깥
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, create_http_exception_handler())

    for router in ROUTERS:
        app.include_router(router)

    Instrumentator(excluded_handlers=["/metrics", "/stream/.*"]).instrument(app).expose(app)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": settings.app_name, "version": settings.version, "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("carmarket.main:app", host=settings.host, port=settings.port, reload=settings.debug)
