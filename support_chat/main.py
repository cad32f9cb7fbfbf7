from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from support_chat import api
from support_chat.api import include_routers
from support_chat.core.config import settings
from support_chat.core.logging import setup_logging, get_logger
from support_chat.database import init_databases, close_databases
from support_chat.middleware.error_handler import ErrorHandlerMiddleware, create_http_exception_handler
from support_chat.websockets.server import sio

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    await init_databases()
    logger.info(f"{settings.app_name} {settings.version} started")
    yield
    # Shutdown
    await close_databases()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(StarletteHTTPException, create_http_exception_handler())

# Include routers
include_routers(app, "api", api.__path__)

# Socket.IO는 /socket.io 경로에서, 나머지 요청은 FastAPI로 전달
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)


@app.get("/")
async def root():
    return {"message": settings.app_name}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "support_chat.main:asgi_app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
