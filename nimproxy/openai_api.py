"""
OpenAI API endpoints
"""

import time
from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from .errors import ProxyError, err_method_not_allowed
from .schemas import OpenAIRequest, ModelsResponse, Model
from .helpers import (
    error_log,
    debug_log,
    generate_uuid,
    json_lib,
    bind_request_context,
    reset_request_context,
    request_stage_log,
)
from .services.openai_service import chat_completion_service

router = APIRouter()

service = chat_completion_service

_CONTEXT_KEYS = ("request_id", "model", "upstream_model", "mode")


@router.get("/v1/models")
async def list_models():
    """List available models"""
    current_time = int(time.time())
    return ModelsResponse(
        data=[
            Model(id=alias, created=current_time, owned_by=service.settings.OWNED_BY)
            for alias in service.resolver.aliases()
        ]
    )


@router.get("/v1/chat/completions")
async def chat_completions_get():
    raise err_method_not_allowed("GET", "/v1/chat/completions")


@router.post("/v1/chat/completions")
async def chat_completions(request: OpenAIRequest):
    """处理 chat completion 请求，支持流式和非流式"""
    bind_request_context(
        request_id=generate_uuid(),
        model=request.model,
        mode="stream" if request.stream else "non_stream",
    )
    request_stage_log(
        "received",
        "收到客户端请求",
        stream=request.stream,
        message_count=len(request.messages),
    )
    debug_log("客户端请求体详情", request_body=json_lib.dumps(request.model_dump()))

    try:
        transformed = service.prepare_request(request)
        bind_request_context(upstream_model=transformed["upstream_model"])
        request_stage_log("transformed", "请求已转换为上游所需格式")

        if not request.stream:
            try:
                return await service.handle_non_stream_request(request, transformed)
            finally:
                reset_request_context(*_CONTEXT_KEYS)

        upstream_response = await service.open_stream(transformed)

    except ProxyError:
        reset_request_context(*_CONTEXT_KEYS)
        error_log("[REQUEST] 请求处理失败")
        raise
    except Exception as e:
        reset_request_context(*_CONTEXT_KEYS)
        error_log("处理请求时发生错误", error=str(e))
        raise ProxyError(500, f"Internal server error: {str(e)}")

    async def stream_response():
        try:
            request_stage_log("stream_dispatch", "开始推送流式响应数据")
            async for chunk in service.stream_response(upstream_response):
                yield chunk
        finally:
            # 客户端断开时生成器被取消，这里保证上游连接被释放
            await upstream_response.aclose()
            request_stage_log("stream_cleanup", "流式上下文清理")
            reset_request_context(*_CONTEXT_KEYS)

    return StreamingResponse(
        stream_response(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
        },
    )
