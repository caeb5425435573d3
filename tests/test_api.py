"""End-to-end tests for the HTTP layer."""

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from unittest.mock import patch

import aiohttp
import pytest
import yaml
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from cli_bridge.config import Settings
from cli_bridge.main import create_app

from conftest import HELLO_LINE


@pytest.fixture
def app_settings(mock_env_vars, providers_config_path) -> Settings:
    return Settings(PROVIDERS_CONFIG_PATH=providers_config_path, CLI_TIMEOUT=30)


@asynccontextmanager
async def _client(settings: Settings):
    async with TestClient(TestServer(create_app(settings))) as client:
        yield client


def _chat_body(**overrides):
    body = {"messages": [{"role": "user", "content": "Hi"}]}
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_health_lists_providers(app_settings):
    async with _client(app_settings) as client:
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()

    assert data["status"] == "ok"
    assert data["providers"] == ["claude", "codex", "gemini", "llm", "echo", "hello", "missing"]


@pytest.mark.asyncio
async def test_chat_streams_text_then_done(app_settings):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=_chat_body(provider="hello"))
        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/event-stream")
        assert resp.headers["Cache-Control"] == "no-cache"
        body = await resp.text()

    assert body == 'data: {"text":"Hello"}\n\ndata: [DONE]\n\n'


@pytest.mark.asyncio
async def test_tool_alias_selects_provider(app_settings):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=_chat_body(tool="hello"))
        body = await resp.text()

    assert body.endswith("data: [DONE]\n\n")
    assert '"Hello"' in body


@pytest.mark.asyncio
async def test_prompt_reaches_cli(app_settings):
    body = _chat_body(
        provider="echo",
        messages=[
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
            {"role": "user", "content": "Bye"},
        ],
        systemPrompt="Be brief",
    )
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=body)
        text = await resp.text()

    expected = "System instructions: Be brief\\n\\nUser: Hi\\n\\nAssistant: Hello!\\n\\nUser: Bye"
    assert text == f'data: {{"text":"{expected}"}}\n\ndata: [DONE]\n\n'


@pytest.mark.asyncio
async def test_missing_binary_reports_error_in_stream(app_settings):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=_chat_body(provider="missing"))
        assert resp.status == 200
        body = await resp.text()

    assert body == (
        'data: {"error":"Failed to start missing CLI. Is it installed?"}\n\n'
        "data: [DONE]\n\n"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"messages": []}, {"messages": "Hi"}])
async def test_missing_messages_rejected(app_settings, body):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=body)
        assert resp.status == 400
        data = await resp.json()

    assert data["error"] == "messages array required"
    assert "claude" in data["available"]


@pytest.mark.asyncio
async def test_unknown_provider_rejected(app_settings):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=_chat_body(provider="copilot"))
        assert resp.status == 400
        assert resp.content_type == "application/json"
        data = await resp.json()

    assert data["error"] == "Unknown provider: copilot"
    assert data["available"] == ["claude", "codex", "gemini", "llm", "echo", "hello", "missing"]


@pytest.mark.asyncio
async def test_invalid_role_rejected(app_settings):
    body = _chat_body(messages=[{"role": "system", "content": "Hi"}])
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=body)
        assert resp.status == 400
        data = await resp.json()

    assert data["error"].startswith("messages.0.role")


@pytest.mark.asyncio
async def test_invalid_json_rejected(app_settings):
    async with _client(app_settings) as client:
        resp = await client.post(
            "/chat", data="{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 400
        data = await resp.json()

    assert data["error"] == "request body must be valid JSON"


@pytest.mark.asyncio
async def test_default_provider_used_when_unspecified(mock_env_vars, providers_config_path):
    settings = Settings(PROVIDERS_CONFIG_PATH=providers_config_path, DEFAULT_PROVIDER="hello")
    async with _client(settings) as client:
        resp = await client.post("/chat", json=_chat_body())
        body = await resp.text()

    assert body == 'data: {"text":"Hello"}\n\ndata: [DONE]\n\n'


@pytest.mark.asyncio
async def test_cors_headers_on_responses(app_settings):
    async with _client(app_settings) as client:
        health = await client.get("/health")
        stream = await client.post("/chat", json=_chat_body(provider="hello"))
        await stream.text()

    assert health.headers["Access-Control-Allow-Origin"] == "*"
    assert stream.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_cors_preflight(app_settings):
    async with _client(app_settings) as client:
        resp = await client.options(
            "/chat",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
        )

    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "POST" in resp.headers["Access-Control-Allow-Methods"]


@pytest.mark.asyncio
async def test_oversized_body_rejected(mock_env_vars, providers_config_path):
    settings = Settings(PROVIDERS_CONFIG_PATH=providers_config_path, MAX_BODY_BYTES=128)
    body = _chat_body(messages=[{"role": "user", "content": "x" * 1024}])
    async with _client(settings) as client:
        resp = await client.post("/chat", json=body)

    assert resp.status == 413


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider,overrides",
    [
        ("gemini", {"messages": [{"role": "user", "content": "a\u0000b"}]}),
        ("claude", {"systemPrompt": "be\u0000brief"}),
    ],
)
async def test_unlaunchable_arguments_report_error_in_stream(app_settings, provider, overrides):
    async with _client(app_settings) as client:
        resp = await client.post("/chat", json=_chat_body(provider=provider, **overrides))
        assert resp.status == 200
        body = await resp.text()

    assert body == (
        f'data: {{"error":"Failed to start {provider} CLI. Is it installed?"}}\n\n'
        "data: [DONE]\n\n"
    )


async def _wait_for_exit(pid: int, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return
        await asyncio.sleep(0.05)
    pytest.fail(f"CLI process {pid} still running after client disconnect")


@pytest.mark.asyncio
async def test_client_disconnect_terminates_cli_once(
    mock_env_vars, providers_yaml_content, tmp_path
):
    """Dropping the connection mid-stream stops the CLI with a single SIGTERM."""
    pid_file = tmp_path / "cli.pid"
    script = (
        "import os, time\n"
        f"with open({str(pid_file)!r}, 'w') as f:\n"
        "    f.write(str(os.getpid()))\n"
        f"print({HELLO_LINE!r}, flush=True)\n"
        "time.sleep(30)\n"
    )
    providers_yaml_content["providers"]["sleepy"] = {
        "command": sys.executable,
        "base_args": ["-c", script],
        "model_flag": None,
        "parser": "claude-stream-json",
    }
    config_file = tmp_path / "providers.yaml"
    config_file.write_text(yaml.dump(providers_yaml_content))
    settings = Settings(PROVIDERS_CONFIG_PATH=str(config_file), CLI_TERMINATE_GRACE=5)

    # Same handler cancellation as run_app in main()
    runner = web.AppRunner(create_app(settings), handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]

    process_cls = asyncio.subprocess.Process
    try:
        with patch.object(
            process_cls, "terminate", autospec=True, side_effect=process_cls.terminate
        ) as terminate:
            async with aiohttp.ClientSession() as client:
                resp = await client.post(
                    f"http://{host}:{port}/chat", json=_chat_body(provider="sleepy")
                )
                assert resp.status == 200
                first = await resp.content.readline()
                assert first == b'data: {"text":"Hello"}\n'
                resp.close()

            pid = int(pid_file.read_text())
            await _wait_for_exit(pid)

        assert terminate.call_count == 1
    finally:
        await runner.cleanup()
