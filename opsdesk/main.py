from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from .core.config import settings
from .core.database import close_db_connections
from .core.cache import cache_manager
from .core.error_handlers import general_exception_handler
from .core.logging import setup_logging
from .routers import health, chat_router, live_feed_router
from .services.chat.presence import presence_hub

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting OpsDesk Chat API")

    if settings.cache_enabled:
        await cache_manager.connect()
        logger.info("Cache initialized")

    yield

    logger.info("Shutting down OpsDesk Chat API")
    for connection in list(presence_hub.active_connections.values()):
        connection.close()
    await cache_manager.disconnect()
    await close_db_connections()
    logger.info("Shutdown complete")

app = FastAPI(
    title="OpsDesk Chat API",
    description="Team and direct messaging with read receipts and a live event feed",
    version=settings.app_version,
    lifespan=lifespan
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health.router)
app.include_router(chat_router)
app.include_router(live_feed_router)

@app.get("/")
async def root():
    return {
        "message": "OpsDesk Chat API",
        "version": settings.app_version,
        "features": ["Team room", "Direct rooms", "Read receipts", "Live feed"],
        "status": "active"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("opsdesk.main:app", host="0.0.0.0", port=8000, reload=True)
