"""Service layer orchestrating OpenAI-compatible chat completions."""

from __future__ import annotations

import time
from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx
from fastapi.responses import PlainTextResponse

from ..config import settings as default_settings
from ..errors import UpstreamError, err_missing_credential
from ..helpers import (
    debug_log,
    error_log,
    warning_log,
    json_lib,
    perf_timer,
    request_stage_log,
)
from ..model_resolver import ModelResolver
from ..nim_transformer import NIMTransformer
from ..schemas import OpenAIRequest
from .chunk_builder import ChunkBuilder
from .network_manager import NetworkManager, network_manager
from .response_parser import ResponseParser
from .stream_reassembler import StreamReassembler


class ChatCompletionService:
    """Encapsulate chat completion workflow independent of FastAPI layer."""

    def __init__(
        self,
        settings=None,
        client: Optional[httpx.AsyncClient] = None,
        network: Optional[NetworkManager] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.resolver = ModelResolver.from_settings(self.settings)
        self.transformer = NIMTransformer(self.settings)
        self.parser = ResponseParser(show_reasoning=self.settings.SHOW_REASONING)
        self.chunk = ChunkBuilder(json_lib)
        self._client = client
        self._network = network or network_manager

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await self._network.get_or_create_client()

    def ensure_credentials(self) -> None:
        if not self.settings.NIM_API_KEY:
            error_log("[CONFIG] NIM_API_KEY 未配置")
            raise err_missing_credential()

    def prepare_request(self, request: OpenAIRequest) -> Dict[str, Any]:
        """校验凭据、解析模型并转换请求体。"""
        self.ensure_credentials()
        upstream_model = self.resolver.resolve(request.model)
        request_stage_log(
            "model_resolved",
            "模型已解析",
            model=request.model,
            upstream_model=upstream_model,
        )
        request_dict = request.model_dump(exclude_none=True)
        return self.transformer.transform_request_in(request_dict, upstream_model)

    def _extract_error_message(self, response: httpx.Response) -> str:
        text = response.text or ""
        try:
            data = json_lib.loads(response.content)
        except ValueError:
            data = None

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            for key in ("detail", "message"):
                if data.get(key):
                    return str(data[key])

        return text[:500] or f"Upstream returned HTTP {response.status_code}"

    async def handle_non_stream_request(
        self,
        request: OpenAIRequest,
        transformed: Dict[str, Any],
    ) -> Union[Dict[str, Any], PlainTextResponse]:
        request_stage_log("non_stream_pipeline", "进入非流式处理流程")
        client = await self.get_client()

        try:
            with perf_timer("upstream_non_stream"):
                response = await client.post(
                    transformed["config"]["url"],
                    json=transformed["body"],
                    headers=transformed["config"]["headers"],
                )
        except httpx.HTTPError as exc:
            error_log("上游请求失败", error=str(exc))
            raise UpstreamError(f"Upstream request failed: {exc}") from exc

        if not response.is_success:
            message = self._extract_error_message(response)
            error_log(
                "上游返回错误",
                status_code=response.status_code,
                error_detail=message[:200],
            )
            raise UpstreamError(message, response.status_code)

        try:
            upstream_json = json_lib.loads(response.content)
        except ValueError:
            upstream_json = None

        if not isinstance(upstream_json, dict):
            warning_log("[RESPONSE] 上游返回非 JSON 内容，原样返回", status_code=response.status_code)
            return PlainTextResponse(response.text, status_code=response.status_code)

        result = self.parser.transform_response(
            upstream_json,
            requested_model=request.model,
            upstream_model=transformed["upstream_model"],
        )
        request_stage_log(
            "non_stream_completed",
            "非流式响应完成",
            completion_tokens=result["usage"].get("completion_tokens"),
            prompt_tokens=result["usage"].get("prompt_tokens"),
        )
        return result

    async def open_stream(self, transformed: Dict[str, Any]) -> httpx.Response:
        """发起流式请求并在返回前检查上游状态码。"""
        client = await self.get_client()
        upstream_request = client.build_request(
            "POST",
            transformed["config"]["url"],
            json=transformed["body"],
            headers=transformed["config"]["headers"],
        )

        request_start_time = time.perf_counter()
        try:
            response = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            error_log("上游流式请求失败", error=str(exc))
            raise UpstreamError(f"Upstream request failed: {exc}") from exc

        ttfb = (time.perf_counter() - request_start_time) * 1000
        debug_log("⏱️ 上游TTFB (首字节时间)", ttfb_ms=f"{ttfb:.2f}ms")

        if not response.is_success:
            try:
                await response.aread()
                message = self._extract_error_message(response)
            except httpx.HTTPError as exc:
                # 错误体读取失败时仍按上游状态码返回
                error_log("读取上游错误响应失败", error=str(exc))
                message = f"Upstream returned HTTP {response.status_code}"
            finally:
                await response.aclose()
            error_log(
                "上游返回错误",
                status_code=response.status_code,
                error_detail=message[:200],
            )
            raise UpstreamError(message, response.status_code)

        request_stage_log("upstream_stream_ready", "NIM 响应成功，开始处理 SSE 流")
        return response

    async def stream_response(self, response: httpx.Response) -> AsyncIterator[str]:
        """逐块读取上游 SSE 并立即输出转换后的事件。"""
        reassembler = StreamReassembler(
            show_reasoning=self.settings.SHOW_REASONING,
            json_lib=json_lib,
        )
        try:
            async for text in response.aiter_text():
                for frame in reassembler.feed(text):
                    yield frame
                if reassembler.finished:
                    break

            for frame in reassembler.finish():
                yield frame

            request_stage_log(
                "stream_completed",
                "流式响应完成",
                events=reassembler.event_count,
                passthrough=reassembler.passthrough_count,
            )
        except httpx.HTTPError as exc:
            error_log("[STREAM] 上游流中断", error=str(exc))
            for frame in reassembler.finish():
                yield frame
            if self.settings.EMIT_STREAM_ERROR_EVENT:
                yield self.chunk.build_error_chunk(f"Upstream stream failed: {exc}", code=502)
        finally:
            await response.aclose()


chat_completion_service = ChatCompletionService()
