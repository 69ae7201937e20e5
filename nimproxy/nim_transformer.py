#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
NIM格式转换器
"""

from typing import Any, Dict, List

from .helpers import debug_log, info_log


class NIMTransformer:
    """把 OpenAI 请求转换为 NVIDIA NIM chat/completions 请求"""

    def __init__(self, settings) -> None:
        self.settings = settings

    @property
    def thinking_enabled(self) -> bool:
        return self.settings.ENABLE_THINKING_MODE

    def build_url(self) -> str:
        return f"{self.settings.NIM_API_BASE.rstrip('/')}/chat/completions"

    def build_headers(self, stream: bool = False) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.NIM_API_KEY}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }

    def _copy_messages(self, messages: List[Any]) -> List[Dict[str, Any]]:
        """复制消息列表，调用方持有的原始请求不被修改"""
        copied = []
        for msg in messages or []:
            if hasattr(msg, "model_dump"):
                copied.append(msg.model_dump(exclude_none=True))
            else:
                copied.append({k: v for k, v in msg.items() if v is not None})
        return copied

    def transform_request_in(self, request: Dict[str, Any], upstream_model: str) -> Dict[str, Any]:
        """
        转换OpenAI请求为NIM格式

        Args:
            request: OpenAI格式的请求（字典）
            upstream_model: 已解析的 NIM 模型 ID

        Returns:
            {"body": 上游请求体, "config": {"url": ..., "headers": ...}, "upstream_model": ...}
        """
        info_log(
            "开始转换 OpenAI 请求到 NIM 格式",
            model=request.get("model"),
            upstream_model=upstream_model,
        )

        messages = self._copy_messages(request.get("messages"))

        temperature = request.get("temperature")
        max_tokens = request.get("max_tokens")
        stream = bool(request.get("stream"))

        body: Dict[str, Any] = {
            "model": upstream_model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.settings.DEFAULT_TEMPERATURE,
            "max_tokens": max_tokens if max_tokens is not None else self.settings.DEFAULT_MAX_TOKENS,
            "stream": stream,
        }

        if self.thinking_enabled:
            if self.settings.THINKING_ENCODING == "system_prompt":
                messages.insert(0, {"role": "system", "content": self.settings.THINKING_PROMPT})
            else:
                body["chat_template_kwargs"] = {"thinking": True}
            debug_log("  已启用 thinking 模式", encoding=self.settings.THINKING_ENCODING)

        debug_log(
            "  请求体已构建",
            message_count=len(messages),
            temperature=body["temperature"],
            max_tokens=body["max_tokens"],
            stream=stream,
        )

        return {
            "body": body,
            "config": {
                "url": self.build_url(),
                "headers": self.build_headers(stream),
            },
            "upstream_model": upstream_model,
        }
