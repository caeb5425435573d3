"""Render a chat conversation as the single prompt a CLI tool reads."""

from collections.abc import Sequence

from cli_bridge.bridge.models import ChatMessage
from cli_bridge.providers.models import ProviderSpec

ROLE_LABELS = {"user": "User", "assistant": "Assistant"}

SYSTEM_HEADER = "System instructions: {system_prompt}"


def build_prompt(
    messages: Sequence[ChatMessage],
    system_prompt: str | None,
    spec: ProviderSpec,
) -> str:
    """Build the prompt text for ``spec``.

    Messages become ``"User: ..."`` / ``"Assistant: ..."`` blocks separated
    by a blank line, in the order given. The system prompt is prepended only
    for providers that embed it; the others receive it as a CLI flag.
    """
    parts = [f"{ROLE_LABELS[m.role]}: {m.content}" for m in messages]
    if spec.embed_system_prompt and system_prompt:
        parts.insert(0, SYSTEM_HEADER.format(system_prompt=system_prompt))
    return "\n\n".join(parts)
