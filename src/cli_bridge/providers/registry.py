"""Registry of CLI providers, built once at startup and read-only after."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

import structlog
import yaml

from cli_bridge.providers.models import (
    FlagArgs,
    InputMode,
    ProviderConfig,
    ProvidersConfig,
    ProviderSpec,
)
from cli_bridge.providers.parsers import (
    CLAUDE_STREAM_JSON,
    CODEX_JSON,
    GEMINI_STREAM_JSON,
    PLAIN_TEXT,
    get_parser,
)

logger = structlog.get_logger()

BUILTIN_PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        name="claude",
        command="claude",
        parser=CLAUDE_STREAM_JSON,
        args=FlagArgs(
            base=("-p", "--output-format", "stream-json", "--verbose"),
            system_prompt_flag="--system-prompt",
        ),
    ),
    ProviderSpec(
        name="codex",
        command="codex",
        parser=CODEX_JSON,
        args=FlagArgs(
            base=("exec", "--json"),
            system_prompt_flag="--instructions",
        ),
    ),
    ProviderSpec(
        name="gemini",
        command="gemini",
        parser=GEMINI_STREAM_JSON,
        args=FlagArgs(
            base=("--output-format", "stream-json"),
            system_prompt_flag="--system-instruction",
            prompt_flag="-p",
        ),
        input_mode=InputMode.ARG,
    ),
    ProviderSpec(
        name="llm",
        command="llm",
        parser=PLAIN_TEXT,
        args=FlagArgs(model_flag="-m"),
        embed_system_prompt=True,
    ),
)


class ProviderNotFoundError(LookupError):
    """Raised when a chat request names a provider that is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(f"Unknown provider: {name}")
        self.name = name
        self.available = available


class ProviderRegistry:
    """Maps provider names to their ProviderSpec.

    The mapping is frozen at construction, so one instance can be shared by
    any number of concurrent sessions.
    """

    def __init__(self, specs: Iterable[ProviderSpec]) -> None:
        table: dict[str, ProviderSpec] = {}
        for spec in specs:
            if spec.name in table:
                raise ValueError(f"Duplicate provider: {spec.name}")
            table[spec.name] = spec
        self._specs: Mapping[str, ProviderSpec] = MappingProxyType(table)

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def lookup(self, name: str) -> ProviderSpec:
        """Return the spec for ``name``.

        Raises:
            ProviderNotFoundError: with the list of valid names.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ProviderNotFoundError(name, self.names)
        return spec

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[ProviderSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)


def _apply_config(
    name: str, config: ProviderConfig, base: ProviderSpec | None
) -> ProviderSpec:
    """Merge one YAML entry onto a built-in spec, or create a new spec."""
    fields = config.overrides()
    if base is None:
        missing = [key for key in ("command", "parser") if key not in fields]
        if missing:
            raise ValueError(
                f"Provider {name!r} is not built in and must set: {', '.join(missing)}"
            )
        system_prompt_flag = fields.get("system_prompt_flag")
        base = ProviderSpec(
            name=name,
            command=fields["command"],
            parser=get_parser(fields["parser"]),
            args=FlagArgs(system_prompt_flag=system_prompt_flag),
            embed_system_prompt=not system_prompt_flag,
        )

    args = base.args
    arg_fields = {
        "base": tuple(fields["base_args"]) if "base_args" in fields else args.base,
        "model_flag": fields.get("model_flag", args.model_flag),
        "system_prompt_flag": fields.get("system_prompt_flag", args.system_prompt_flag),
        "prompt_flag": fields.get("prompt_flag", args.prompt_flag),
    }
    return dataclasses.replace(
        base,
        command=fields.get("command", base.command),
        parser=get_parser(fields["parser"]) if "parser" in fields else base.parser,
        args=FlagArgs(**arg_fields),
        input_mode=InputMode(fields.get("input_mode", base.input_mode)),
        embed_system_prompt=fields.get("embed_system_prompt", base.embed_system_prompt),
    )


def load_providers_config(config_path: str) -> ProvidersConfig:
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    return ProvidersConfig(**raw)


def build_registry(config_path: str = "") -> ProviderRegistry:
    """Build the process-wide registry.

    Starts from the built-in providers and applies the optional YAML file:
    entries for known names override the fields they set, new names add a
    provider, and ``enabled: false`` removes one.
    """
    specs = {spec.name: spec for spec in BUILTIN_PROVIDERS}

    if config_path:
        config = load_providers_config(config_path)
        for name, entry in config.providers.items():
            if not entry.enabled:
                specs.pop(name, None)
                logger.info("provider_disabled", provider=name)
                continue
            specs[name] = _apply_config(name, entry, specs.get(name))
            logger.info("provider_configured", provider=name, command=specs[name].command)

    registry = ProviderRegistry(specs.values())
    logger.info("provider_registry_built", providers=registry.names)
    return registry
