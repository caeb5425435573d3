"""Line parsers for the output formats of supported CLI tools.

Each JSON-lines parser decodes one line and hands the value to an
extraction function returning the text fragments it recognizes, in order.
Values of an unknown shape yield no fragments.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from cli_bridge.providers.models import PARSE_FAILED, LineParser, ParseResult

Extractor = Callable[[Any], list[str]]


@dataclass(frozen=True, slots=True)
class JsonLineParser:
    """Parser for newline-delimited JSON output."""

    name: str
    extract: Extractor
    plain_text: ClassVar[bool] = False

    def parse(self, line: str) -> ParseResult:
        try:
            value = json.loads(line)
        except ValueError:
            return PARSE_FAILED
        return ParseResult(tuple(self.extract(value)))


@dataclass(frozen=True, slots=True)
class PlainTextParser:
    """Output is already the answer text; chunks are forwarded untouched."""

    name: str = "plain-text"
    plain_text: ClassVar[bool] = True

    def parse(self, line: str) -> ParseResult:
        return ParseResult((line,) if line else ())


def _text(value: Any) -> str | None:
    """Return value if it is a non-empty string."""
    if isinstance(value, str) and value:
        return value
    return None


def _assistant_blocks(event: dict) -> list[str] | None:
    """Text blocks of an ``assistant`` message, or None for other shapes."""
    if event.get("type") != "assistant":
        return None
    message = event.get("message")
    if not isinstance(message, dict) or not message.get("content"):
        return None
    content = message["content"]
    if not isinstance(content, list):
        return []
    return [
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and _text(block.get("text"))
    ]


def _content_block_delta(event: dict) -> str | None:
    if event.get("type") != "content_block_delta":
        return None
    delta = event.get("delta")
    return _text(delta.get("text")) if isinstance(delta, dict) else None


def extract_claude(event: Any) -> list[str]:
    """Claude Code ``--output-format stream-json``.

    ``result`` records repeat the assistant text and are skipped.
    """
    if not isinstance(event, dict):
        return []
    blocks = _assistant_blocks(event)
    if blocks is not None:
        return blocks
    delta = _content_block_delta(event)
    return [delta] if delta else []


def extract_codex(event: Any) -> list[str]:
    """Codex ``exec --json`` events; the first matching shape wins."""
    if not isinstance(event, dict):
        return []
    kind = event.get("type")
    if kind == "message" and _text(event.get("content")):
        return [event["content"]]
    if _text(event.get("output_text")):
        return [event["output_text"]]
    if kind == "response.output_text.delta" and _text(event.get("delta")):
        return [event["delta"]]
    if kind == "response.completed":
        response = event.get("response")
        if isinstance(response, dict) and _text(response.get("output_text")):
            return [response["output_text"]]
    return []


def extract_gemini(event: Any) -> list[str]:
    """Gemini CLI ``--output-format stream-json``."""
    if not isinstance(event, dict):
        return []
    blocks = _assistant_blocks(event)
    if blocks is not None:
        return blocks
    delta = _content_block_delta(event)
    if delta:
        return [delta]
    if _text(event.get("partialText")):
        return [event["partialText"]]
    if "type" not in event and _text(event.get("text")):
        return [event["text"]]
    return []


CLAUDE_STREAM_JSON = JsonLineParser("claude-stream-json", extract_claude)
CODEX_JSON = JsonLineParser("codex-json", extract_codex)
GEMINI_STREAM_JSON = JsonLineParser("gemini-stream-json", extract_gemini)
PLAIN_TEXT = PlainTextParser()

PARSERS: dict[str, LineParser] = {
    parser.name: parser
    for parser in (CLAUDE_STREAM_JSON, CODEX_JSON, GEMINI_STREAM_JSON, PLAIN_TEXT)
}


def get_parser(name: str) -> LineParser:
    """Look up a parser strategy by name."""
    try:
        return PARSERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown parser: {name}. Available: {', '.join(sorted(PARSERS))}"
        ) from None
