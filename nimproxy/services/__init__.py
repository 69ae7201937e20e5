"""Service layer utilities consolidating reusable business logic."""

from .network_manager import network_manager
from .response_parser import ResponseParser
from .stream_reassembler import ReasoningMergeState, StreamReassembler

__all__ = [
    "network_manager",
    "ResponseParser",
    "ReasoningMergeState",
    "StreamReassembler",
]
