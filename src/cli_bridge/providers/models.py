"""Data models for CLI provider strategies and their YAML overrides."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field


class InputMode(str, Enum):
    """How the prompt reaches the CLI process."""

    STDIN = "stdin"
    ARG = "arg"


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Outcome of parsing one line of CLI output.

    ``ok`` is False when the line was not valid structured output; the
    normalizer then decides whether the raw line is worth forwarding.
    """

    fragments: tuple[str, ...] = ()
    ok: bool = True


PARSE_FAILED = ParseResult(ok=False)


class LineParser(Protocol):
    """Line parsing strategy for one CLI output format."""

    name: str
    plain_text: bool

    def parse(self, line: str) -> ParseResult: ...


@dataclass(frozen=True, slots=True)
class FlagArgs:
    """Argument-building strategy driven by command-line flag names.

    ``model_flag`` / ``system_prompt_flag`` are emitted only when a value is
    supplied. ``prompt_flag`` precedes the prompt for ``InputMode.ARG``
    providers; without it the prompt is a bare trailing argument.
    """

    base: tuple[str, ...] = ()
    model_flag: str | None = "--model"
    system_prompt_flag: str | None = None
    prompt_flag: str | None = None

    def build(self, model: str | None, system_prompt: str | None) -> list[str]:
        args = list(self.base)
        if model and self.model_flag:
            args += [self.model_flag, model]
        if system_prompt and self.system_prompt_flag:
            args += [self.system_prompt_flag, system_prompt]
        return args

    def prompt_args(self, prompt: str) -> list[str]:
        if self.prompt_flag:
            return [self.prompt_flag, prompt]
        return [prompt]


@dataclass(frozen=True, slots=True)
class ProviderSpec:
    """Everything needed to drive one CLI tool.

    A provider either passes the system prompt as a flag or embeds it in
    the prompt text, never both.
    """

    name: str
    command: str
    parser: LineParser
    args: FlagArgs = field(default_factory=FlagArgs)
    input_mode: InputMode = InputMode.STDIN
    embed_system_prompt: bool = False

    def __post_init__(self) -> None:
        if not self.embed_system_prompt and not self.args.system_prompt_flag:
            raise ValueError(
                f"Provider {self.name!r} needs a system prompt flag "
                "or embed_system_prompt=True"
            )

    @property
    def plain_text(self) -> bool:
        return self.parser.plain_text

    def build_args(self, model: str | None, system_prompt: str | None) -> list[str]:
        """Build CLI arguments (without the executable or the prompt)."""
        if self.embed_system_prompt:
            system_prompt = None
        return self.args.build(model, system_prompt)

    def build_argv(
        self, prompt: str, model: str | None, system_prompt: str | None
    ) -> list[str]:
        """Full argv for the subprocess, prompt included for ARG providers."""
        argv = [self.command, *self.build_args(model, system_prompt)]
        if self.input_mode is InputMode.ARG:
            argv += self.args.prompt_args(prompt)
        return argv


class ProviderConfig(BaseModel):
    """One provider entry in the providers YAML file.

    Unset fields keep the built-in value when the name is already known.
    """

    command: str | None = Field(default=None, description="Executable name or path")
    base_args: list[str] | None = Field(default=None, description="Fixed leading arguments")
    model_flag: str | None = Field(default=None, description="Flag preceding the model name")
    system_prompt_flag: str | None = Field(
        default=None, description="Flag preceding the system prompt"
    )
    prompt_flag: str | None = Field(
        default=None, description="Flag preceding the prompt for arg input mode"
    )
    input_mode: InputMode | None = None
    embed_system_prompt: bool | None = None
    parser: str | None = Field(default=None, description="Line parser strategy name")
    enabled: bool = True

    def overrides(self) -> dict:
        """Fields explicitly set in the YAML, minus ``enabled``."""
        return {
            k: v
            for k, v in self.model_dump(exclude_unset=True).items()
            if k != "enabled"
        }


class ProvidersConfig(BaseModel):
    """Root providers configuration loaded from YAML."""

    providers: dict[str, ProviderConfig] = Field(default_factory=dict)

