"""HTTP handlers: streaming chat over SSE and a health check."""

import asyncio
import uuid
from contextlib import aclosing

import structlog
from aiohttp import web
from pydantic import ValidationError

from cli_bridge.bridge.models import ChatRequest
from cli_bridge.bridge.prompt import build_prompt
from cli_bridge.bridge.session import SubprocessSession
from cli_bridge.bridge.sse import SSE_HEADERS, SSEWriter
from cli_bridge.config import Settings
from cli_bridge.providers.registry import ProviderNotFoundError, ProviderRegistry

logger = structlog.get_logger()


def _bad_request(message: str, registry: ProviderRegistry) -> web.Response:
    return web.json_response(
        {"error": message, "available": registry.names},
        status=400,
    )


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


async def chat(request: web.Request) -> web.StreamResponse:
    """Stream a CLI provider's answer as Server-Sent Events.

    Request validation happens before the response is prepared, so a bad
    request still gets a plain 400. Once streaming starts, every failure is
    reported in-band and the stream always ends with ``data: [DONE]``.
    """
    settings: Settings = request.app["settings"]
    registry: ProviderRegistry = request.app["registry"]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex[:12])

    try:
        body = await request.json()
    except ValueError:
        return _bad_request("request body must be valid JSON", registry)
    if not isinstance(body, dict):
        return _bad_request("request body must be a JSON object", registry)

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        return _bad_request("messages array required", registry)

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as e:
        logger.warning("chat_request_invalid", errors=e.error_count())
        return _bad_request(_describe_validation_error(e), registry)

    provider = chat_request.provider or settings.default_provider
    try:
        spec = registry.lookup(provider)
    except ProviderNotFoundError as e:
        logger.warning("unknown_provider", provider=provider)
        return _bad_request(str(e), registry)

    prompt = build_prompt(chat_request.messages, chat_request.system_prompt, spec)
    session = SubprocessSession(
        spec,
        prompt,
        model=chat_request.model,
        system_prompt=chat_request.system_prompt,
        timeout=settings.cli_timeout,
        terminate_grace=settings.cli_terminate_grace,
        queue_size=settings.cli_queue_size,
        read_chunk_size=settings.cli_read_chunk_size,
    )

    logger.info(
        "chat_request_accepted",
        provider=spec.name,
        model=chat_request.model,
        message_count=len(chat_request.messages),
        has_system_prompt=bool(chat_request.system_prompt),
    )

    response = web.StreamResponse(status=200, headers=SSE_HEADERS)
    await response.prepare(request)
    writer = SSEWriter(response)

    try:
        async with aclosing(session.events()) as events:
            async for event in events:
                if not await writer.send(event):
                    logger.info("client_disconnected", provider=spec.name)
                    break
    except asyncio.CancelledError:
        logger.info("client_disconnected", provider=spec.name, cancelled=True)
        raise
    finally:
        await writer.finish()

    logger.info(
        "chat_stream_closed",
        provider=spec.name,
        state=session.state.value,
        returncode=session.returncode,
        text_sent=session.text_sent,
    )
    return response


async def health(request: web.Request) -> web.Response:
    """Health check endpoint listing registered providers."""
    registry: ProviderRegistry = request.app["registry"]
    return web.json_response({"status": "ok", "providers": registry.names})


def setup_routes(app: web.Application) -> None:
    app.router.add_post("/chat", chat)
    app.router.add_get("/health", health)
