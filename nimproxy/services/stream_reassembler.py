#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
流式重组器 - 把上游 NIM 的 SSE 字节流重组为事件并转换为 OpenAI 流式格式

上游数据以任意大小的块到达，块边界与事件边界无关：
- 每个块追加到缓冲区，按 "\\n" 切分，只处理完整的行，最后一段残留留待下一块
- "data: [DONE]" 原样转发并结束本次流
- 无法解析的 data 行原样转发，不丢弃也不中断
- reasoning_content 按 <think> 块合并进 content（每个 choice 独立维护状态）

每个客户端连接创建一个实例，实例之间不共享状态。
"""

from typing import Any, Dict, List, Optional

from ..helpers import debug_log, json_lib as default_json_lib
from .chunk_builder import ChunkBuilder, DATA_PREFIX, DONE_SENTINEL
from .response_parser import THINK_CLOSE, THINK_OPEN


class ReasoningMergeState:
    """单个 choice 的推理块状态：NORMAL(False) / REASONING_OPEN(True)"""

    __slots__ = ("reasoning_open",)

    def __init__(self) -> None:
        self.reasoning_open = False

    def __repr__(self) -> str:
        return f"ReasoningMergeState(reasoning_open={self.reasoning_open})"


class StreamReassembler:
    """SSE 流重组器"""

    def __init__(self, show_reasoning: bool = True, json_lib=None) -> None:
        self.show_reasoning = show_reasoning
        self.json_lib = json_lib or default_json_lib
        self.chunk = ChunkBuilder(self.json_lib)

        self._buffer = ""
        self._states: Dict[int, ReasoningMergeState] = {}
        # 最近一个成功解析的事件，用于构造补充的关闭 chunk
        self._last_event: Optional[Dict[str, Any]] = None

        self.finished = False
        self.event_count = 0
        self.passthrough_count = 0

    @property
    def pending(self) -> str:
        """尚未形成完整行的缓冲数据"""
        return self._buffer

    def state(self, index: int = 0) -> ReasoningMergeState:
        state = self._states.get(index)
        if state is None:
            state = self._states[index] = ReasoningMergeState()
        return state

    def feed(self, text: str) -> List[str]:
        """
        处理一个上游数据块

        Returns:
            本块产生的全部出站 SSE 块（按顺序）
        """
        if self.finished or not text:
            return []

        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        frames: List[str] = []
        for line in lines:
            frames.extend(self.process_line(line))
            if self.finished:
                # [DONE] 之后的内容不再处理
                self._buffer = ""
                break
        return frames

    def finish(self) -> List[str]:
        """
        上游流结束（未收到 [DONE]）时调用

        关闭仍未闭合的推理块；缓冲区中不完整的最后一行被丢弃。
        """
        if self.finished:
            return []

        frames = self._close_open_blocks()
        if self._buffer:
            debug_log("[STREAM] 丢弃流末尾不完整的行", discarded_chars=len(self._buffer))
            self._buffer = ""
        self.finished = True
        return frames

    def process_line(self, line: str) -> List[str]:
        """处理一行完整数据"""
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return []

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            frames = self._close_open_blocks()
            frames.append(self.chunk.build_raw_chunk(line))
            self.finished = True
            debug_log(
                "[STREAM] 收到 [DONE]",
                events=self.event_count,
                passthrough=self.passthrough_count,
            )
            return frames

        try:
            event = self.json_lib.loads(payload)
        except ValueError:
            event = None

        if not isinstance(event, dict):
            self.passthrough_count += 1
            debug_log("[STREAM] 无法解析的事件，原样转发", line=line[:200])
            return [self.chunk.build_raw_chunk(line)]

        self._transform_event(event)
        self._last_event = event
        self.event_count += 1
        return [self.chunk.build_data_chunk(event)]

    def _transform_event(self, event: Dict[str, Any]) -> None:
        choices = event.get("choices")
        if not isinstance(choices, list):
            return

        for position, choice in enumerate(choices):
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta")
            if not isinstance(delta, dict):
                continue

            index = choice.get("index")
            if not isinstance(index, int):
                index = position
            delta["content"] = self._merge_delta(delta, index, choice.get("finish_reason"))

    def _merge_delta(self, delta: Dict[str, Any], index: int, finish_reason: Optional[str]) -> str:
        content = delta.get("content")
        if not isinstance(content, str):
            content = ""

        reasoning = delta.pop("reasoning_content", None)
        alt_reasoning = delta.pop("reasoning", None)
        if not reasoning:
            reasoning = alt_reasoning
        if not isinstance(reasoning, str):
            reasoning = ""

        if not self.show_reasoning:
            return content

        state = self.state(index)
        combined = ""

        if reasoning:
            if state.reasoning_open:
                combined = reasoning
            else:
                combined = THINK_OPEN + reasoning
                state.reasoning_open = True

        if content:
            if state.reasoning_open:
                combined += THINK_CLOSE + content
                state.reasoning_open = False
            else:
                combined += content
        elif finish_reason and state.reasoning_open:
            combined += THINK_CLOSE
            state.reasoning_open = False

        return combined

    def _close_open_blocks(self) -> List[str]:
        frames = []
        for index in sorted(self._states):
            state = self._states[index]
            if state.reasoning_open:
                frames.append(self.chunk.build_reasoning_close_chunk(self._last_event, index))
                state.reasoning_open = False
        return frames
