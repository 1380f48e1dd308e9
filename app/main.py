from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.logging import bind_request_id, configure_logging, get_logger
from app.core.redis import redis_client
from app.routers import customers, edit_session, quotes, shipments

settings = get_settings()

configure_logging()
logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup", environment=settings.environment, home_country=settings.home_country)
    yield
    await redis_client.close()


app = FastAPI(
    title=settings.app_name,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(quotes.router, prefix=settings.api_prefix)
app.include_router(shipments.router, prefix=settings.api_prefix)
app.include_router(customers.router, prefix=settings.api_prefix)
app.include_router(edit_session.router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"service": settings.app_name}


@app.get("/health")
async def health():
    return {"status": "ok", "redis": await redis_client.ping()}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    response = await call_next(request)
    logger.info("request", path=str(request.url.path), method=request.method, status=response.status_code)
    response.headers["X-Request-ID"] = request_id
    return response
