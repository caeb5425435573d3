"""Pytest fixtures for cli-bridge tests."""

import os
import sys
from unittest.mock import patch

import pytest
import yaml

from cli_bridge.config import Settings
from cli_bridge.providers.models import FlagArgs, InputMode, ProviderSpec
from cli_bridge.providers.parsers import CLAUDE_STREAM_JSON

HELLO_LINE = '{"type":"assistant","message":{"content":[{"type":"text","text":"Hello"}]}}'


def python_cli(
    script: str,
    name: str = "fake",
    parser=CLAUDE_STREAM_JSON,
    input_mode: InputMode = InputMode.STDIN,
) -> ProviderSpec:
    """A provider whose 'CLI' is the running Python interpreter executing ``script``."""
    return ProviderSpec(
        name=name,
        command=sys.executable,
        parser=parser,
        args=FlagArgs(base=("-c", script), model_flag=None),
        input_mode=input_mode,
        embed_system_prompt=True,
    )


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "HOST": "127.0.0.1",
        "PORT": "3456",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings()


@pytest.fixture
def providers_yaml_content():
    """Providers config adding Python-backed stand-ins for real CLIs."""
    return {
        "providers": {
            "echo": {
                "command": sys.executable,
                "base_args": [
                    "-c",
                    "import json, sys\n"
                    "prompt = sys.stdin.read()\n"
                    "print(json.dumps({'type': 'content_block_delta', 'delta': {'text': prompt}}))\n",
                ],
                "model_flag": None,
                "parser": "claude-stream-json",
            },
            "hello": {
                "command": sys.executable,
                "base_args": ["-c", f"print({HELLO_LINE!r})"],
                "model_flag": None,
                "parser": "claude-stream-json",
            },
            "missing": {
                "command": "cli-bridge-no-such-binary",
                "parser": "plain-text",
            },
        }
    }


@pytest.fixture
def providers_config_path(providers_yaml_content, tmp_path):
    """Write providers config to a temp file and return the path."""
    config_file = tmp_path / "providers.yaml"
    config_file.write_text(yaml.dump(providers_yaml_content))
    return str(config_file)
