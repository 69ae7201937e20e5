#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
响应解析器模块 - 把 NIM 的完整（非流式）响应转换为 OpenAI 格式

reasoning_content 的合并方式与流式保持一致：
    <think>\\n{reasoning}\\n</think>\\n\\n{content}
"""

import time
from typing import Any, Dict, List, Optional

from ..helpers import debug_log, generate_completion_id


THINK_OPEN = "<think>\n"
THINK_CLOSE = "</think>\n\n"

ZERO_USAGE = {
    "prompt_tokens": 0,
    "completion_tokens": 0,
    "total_tokens": 0,
}


class ResponseParser:
    """响应解析器类，封装非流式响应转换逻辑"""

    def __init__(self, show_reasoning: bool = True) -> None:
        self.show_reasoning = show_reasoning

    def merge_reasoning(self, content: Optional[str], reasoning: Optional[str]) -> str:
        """把推理内容包进 <think> 块并放在正文前；关闭显示时推理内容直接丢弃"""
        content = content or ""
        if self.show_reasoning and reasoning:
            return f"{THINK_OPEN}{reasoning}\n{THINK_CLOSE}{content}"
        return content

    def transform_choice(self, choice: Dict[str, Any]) -> Dict[str, Any]:
        message = choice.get("message") or {}
        # 部分上游把 content/reasoning_content 直接放在 choice 上
        content = message.get("content")
        if content is None:
            content = choice.get("content")
        reasoning = message.get("reasoning_content")
        if reasoning is None:
            reasoning = choice.get("reasoning_content")

        index = choice.get("index")
        return {
            "index": index if index is not None else 0,
            "message": {
                "role": message.get("role") or "assistant",
                "content": self.merge_reasoning(content, reasoning),
            },
            "finish_reason": choice.get("finish_reason"),
        }

    def transform_response(
        self,
        upstream: Dict[str, Any],
        requested_model: str,
        upstream_model: str,
    ) -> Dict[str, Any]:
        """
        构建 OpenAI chat.completion 响应

        Args:
            upstream: NIM 返回的完整 JSON
            requested_model: 客户端请求的模型名（原样回显）
            upstream_model: 实际请求的 NIM 模型 ID（客户端未传模型名时兜底）
        """
        raw_choices = upstream.get("choices")
        choices: List[Dict[str, Any]] = []
        if isinstance(raw_choices, list):
            choices = [self.transform_choice(choice) for choice in raw_choices if isinstance(choice, dict)]

        debug_log(
            "[RESPONSE] 非流式响应已转换",
            choice_count=len(choices),
            has_usage=bool(upstream.get("usage")),
        )

        return {
            "id": generate_completion_id(),
            "object": "chat.completion",
            "created": int(time.time()),
            "model": requested_model or upstream.get("model") or upstream_model,
            "choices": choices,
            "usage": upstream.get("usage") or dict(ZERO_USAGE),
        }
