"""Compiled-in default configuration values for chaingate.

This module is the single source of truth for all default settings.
Other modules should import from here rather than duplicating values.
"""

from __future__ import annotations

from typing import Final

NODE_DEFAULTS: Final[dict[str, str | bool]] = {
    "mode": "process",
    "binary": "./target/debug/axon",
    "build_command": "cargo build",
    "config": "devtools/chain/config.toml",
    "chain_spec": "devtools/chain/specs/single_node/chain-spec.toml",
    "data_dir": "devtools/chain/data",
    "log_file": "/tmp/log",
    "compose_dir": "devtools/chain",
    "rpc_url": "http://127.0.0.1:8000",
}

BUILD_ENV_DEFAULTS: Final[dict[str, str]] = {
    "PORTABLE": "1",
    "USE_SSE": "1",
}

READINESS_DEFAULTS: Final[dict[str, int | float]] = {
    "min_blocks": 2,
    "progress_attempts": 3,
    "progress_delay_seconds": 6.0,
    "protocol_attempts": 10,
    "protocol_delay_seconds": 10.0,
    "backoff_multiplier": 1.0,
    "max_delay_seconds": 60.0,
    "request_timeout_seconds": 5.0,
}

SUITE_DEFAULTS: Final[dict[str, str | int]] = {
    "workdir": "openzeppelin-contracts",
    "stage_timeout_seconds": 0,
}

REPORT_DEFAULTS: Final[dict[str, str]] = {
    "source_dir": "openzeppelin-contracts/mochawesome-report",
    "artifact_name": "jfoa-build-reports",
    "server_url": "https://github.com",
}

PUBLISH_DEFAULTS: Final[dict[str, str | bool]] = {
    "context": "OCT 16-19",
    "enabled": True,
}

STAGE_DEFAULTS: Final[list[dict[str, str | bool]]] = [
    {"name": "prepare", "command": "npm install && npm run test:init"},
    {"name": "pipeline5-16", "command": "npm run test:pipeline5-16"},
    {"name": "pipeline5-17", "command": "npm run test:pipeline5-17"},
    {"name": "pipeline5-18", "command": "npm run test:pipeline5-18"},
    {"name": "pipeline5-19", "command": "npm run test:pipeline5-19"},
]


_BARE_KEY_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
)


def _quote_key(key: str) -> str:
    if key and all(c in _BARE_KEY_CHARS for c in key):
        return key
    return f'"{key}"'


def _format_toml_value(value: object) -> str:
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    msg = f"Unsupported type: {type(value)}"
    raise TypeError(msg)


def _section_to_toml(name: str, data: dict[str, object]) -> str:
    lines = [f"[{name}]"]
    for key, value in data.items():
        lines.append(f"{_quote_key(key)} = {_format_toml_value(value)}")
    return "\n".join(lines)


def _array_to_toml(name: str, items: list[dict[str, object]]) -> str:
    blocks = []
    for item in items:
        lines = [f"[[{name}]]"]
        for key, value in item.items():
            lines.append(f"{_quote_key(key)} = {_format_toml_value(value)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def generate_toml() -> str:
    """Generate a TOML configuration string from compiled-in defaults."""
    sections = [
        _section_to_toml("node", NODE_DEFAULTS),
        _section_to_toml("build_env", BUILD_ENV_DEFAULTS),
        _section_to_toml("readiness", READINESS_DEFAULTS),
        _section_to_toml("suite", SUITE_DEFAULTS),
        _section_to_toml("report", REPORT_DEFAULTS),
        _section_to_toml("publish", PUBLISH_DEFAULTS),
        _array_to_toml("stage", STAGE_DEFAULTS),
    ]
    return "\n\n".join(sections) + "\n"
