#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
响应块构建器模块 - 封装所有 SSE 流式响应块构建逻辑
"""

import time
from typing import Any, Dict, Optional

from ..helpers import json_lib as default_json_lib


DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class ChunkBuilder:
    """响应块构建器类，封装所有 SSE 块构建逻辑"""

    def __init__(self, json_lib=None) -> None:
        self.json_lib = json_lib or default_json_lib

    def build_data_chunk(self, payload: Dict[str, Any]) -> str:
        """序列化一个事件对象为 SSE data 块"""
        return f"data: {self.json_lib.dumps(payload)}\n\n"

    def build_raw_chunk(self, line: str) -> str:
        """原样转发一行（[DONE] 终止符、无法解析的事件）"""
        return f"{line}\n\n"

    def build_reasoning_close_chunk(self, template: Optional[Dict[str, Any]], index: int = 0) -> str:
        """构建关闭 <think> 块的补充 chunk，沿用最近一个上游事件的 id/model"""
        template = template or {}
        return self.build_data_chunk({
            "id": template.get("id", ""),
            "object": template.get("object", "chat.completion.chunk"),
            "created": template.get("created", int(time.time())),
            "model": template.get("model", ""),
            "choices": [{
                "index": index,
                "delta": {"content": "</think>\n\n"},
                "finish_reason": None,
            }],
        })

    def build_error_chunk(self, message: str, code: Optional[int] = None) -> str:
        """构建上游流中断时的错误 chunk"""
        return self.build_data_chunk({
            "error": {
                "message": message,
                "type": "upstream_stream_error",
                "code": code,
            }
        })
