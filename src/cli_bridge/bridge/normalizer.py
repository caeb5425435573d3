"""Turn raw CLI stdout bytes into text fragments.

JSON-lines output is reassembled into complete lines before parsing, so the
fragments produced do not depend on how the pipe chunks the byte stream.
Plain-text output is forwarded chunk by chunk.
"""

import codecs

from cli_bridge.providers.models import LineParser, ProviderSpec

_STRUCTURED_PREFIXES = ("{", "[")


class StreamNormalizer:
    """Stateful per-session normalizer; feed bytes in, get fragments out."""

    def __init__(self, spec: ProviderSpec) -> None:
        self._parser: LineParser = spec.parser
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.text_sent = False

    def feed(self, data: bytes) -> list[str]:
        """Consume one chunk of stdout and return the fragments it completes."""
        text = self._decoder.decode(data)
        if self._parser.plain_text:
            return self._emit(self._parser.parse(text).fragments)

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        fragments: list[str] = []
        for line in lines:
            fragments.extend(self.normalize_line(line))
        return self._emit(fragments)

    def finish(self) -> list[str]:
        """Flush whatever is left once stdout is closed.

        A residual that does not parse is forwarded only when the session
        has produced no text at all.
        """
        tail = self._decoder.decode(b"", final=True)
        if self._parser.plain_text:
            return self._emit(self._parser.parse(tail).fragments)

        residual = self._buffer + tail
        self._buffer = ""
        if not residual.strip():
            return []

        result = self._parser.parse(residual)
        if result.ok:
            return self._emit(result.fragments)
        if not self.text_sent:
            return self._emit((residual.strip(),))
        return []

    def normalize_line(self, line: str) -> list[str]:
        """Fragments for one complete line of JSON-lines output.

        Unparsable lines that look like stray diagnostics are passed through
        as text; unparsable lines that look like broken JSON are dropped.
        """
        if not line.strip():
            return []
        result = self._parser.parse(line)
        if result.ok:
            return list(result.fragments)
        trimmed = line.strip()
        if trimmed.startswith(_STRUCTURED_PREFIXES):
            return []
        return [trimmed + "\n"]

    def _emit(self, fragments) -> list[str]:
        fragments = [f for f in fragments if f]
        if fragments:
            self.text_sent = True
        return fragments
