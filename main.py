#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Main application entry point - OpenAI to NVIDIA NIM format conversion
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nimproxy import openai_api
from nimproxy.config import settings
from nimproxy.errors import ProxyError, err_endpoint_not_found
from nimproxy.helpers import error_log, info_log
from nimproxy.schemas import HealthResponse
from nimproxy.services.network_manager import network_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    info_log(
        "[STARTUP] NIM 代理已启动",
        upstream=settings.NIM_API_BASE,
        reasoning_display=settings.SHOW_REASONING,
        thinking_mode=settings.ENABLE_THINKING_MODE,
        models=len(settings.MODEL_MAPPING),
        default_model=settings.DEFAULT_FALLBACK_MODEL,
        api_key_configured=bool(settings.NIM_API_KEY),
    )
    yield
    await network_manager.cleanup_clients()


# Create FastAPI app
app = FastAPI(
    title="OpenAI to NVIDIA NIM Proxy",
    description="OpenAI-compatible proxy for NVIDIA NIM chat completions",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include API router
app.include_router(openai_api.router)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 未知路径和不支持的方法统一按 404 处理
    if exc.status_code in (404, 405):
        error = err_endpoint_not_found(request.url.path)
    else:
        error = ProxyError(exc.status_code, str(exc.detail))
    return JSONResponse(error.to_payload(), status_code=error.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid body") if errors else "invalid body"
    error_log("[REQUEST] 请求体校验失败", detail=detail)
    error = ProxyError(400, f"Invalid request body: {detail}")
    return JSONResponse(error.to_payload(), status_code=error.status_code)


def health_payload() -> dict:
    current = openai_api.service.settings
    return HealthResponse(
        service=current.SERVICE_NAME,
        reasoning_display=current.SHOW_REASONING,
        thinking_mode=current.ENABLE_THINKING_MODE,
    ).model_dump()


@app.options("/")
async def handle_options():
    """Handle OPTIONS requests"""
    return Response(status_code=204)


@app.get("/")
async def root():
    """Root endpoint"""
    return RedirectResponse(url="/health", status_code=302)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return health_payload()


@app.get("/v1/health")
async def v1_health():
    return RedirectResponse(url="/health", status_code=302)


if __name__ == "__main__":
    import uvicorn
    import os
    import platform
    import multiprocessing

    if platform.system() == "Windows":
        workers = 1
    else:
        # (2 × CPU核心数) + 1，环境变量可覆盖
        cpu_count = multiprocessing.cpu_count()
        default_workers = (2 * cpu_count) + 1
        workers = int(os.getenv("UVICORN_WORKERS", str(default_workers)))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.LISTEN_PORT,
        workers=workers,
        http="httptools",
        reload=False,
        log_level="info",
    )
