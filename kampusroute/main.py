import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kampusroute.api.health import router as health_router
from kampusroute.api.posts import router as posts_router
from kampusroute.config import settings
from kampusroute.database import engine
from kampusroute.logging_config import setup_logging
from kampusroute.models import Base

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    if settings.CREATE_TABLES or settings.RESET_DB:
        async with engine.begin() as conn:
            if settings.RESET_DB:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    logger.info("KampusRoute API started")
    try:
        yield
    finally:
        await engine.dispose()


app = FastAPI(title="KampusRoute", version="0.1.0", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Clients read errors from "message"
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})


app.include_router(health_router)
app.include_router(posts_router, prefix="/api")


@app.get("/api")
def api_root():
    return {"message": "KampusRoute API"}
