"""Streaming adapter between chat requests and CLI subprocesses."""

from cli_bridge.bridge.models import ChatMessage, ChatRequest, StreamEvent
from cli_bridge.bridge.normalizer import StreamNormalizer
from cli_bridge.bridge.prompt import build_prompt
from cli_bridge.bridge.session import SessionState, SubprocessSession
from cli_bridge.bridge.sse import SSEWriter, encode_event

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "SSEWriter",
    "SessionState",
    "StreamEvent",
    "StreamNormalizer",
    "SubprocessSession",
    "build_prompt",
    "encode_event",
]
