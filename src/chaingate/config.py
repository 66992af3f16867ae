from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from chaingate.defaults import (
    BUILD_ENV_DEFAULTS,
    NODE_DEFAULTS,
    PUBLISH_DEFAULTS,
    READINESS_DEFAULTS,
    REPORT_DEFAULTS,
    STAGE_DEFAULTS,
    SUITE_DEFAULTS,
    generate_toml,
)
from chaingate.models import Stage

CONFIG_FILENAME = "chaingate.toml"
CONFIG_DIR = ".chaingate"


@dataclass
class NodeConfig:
    mode: str
    binary: str
    build_command: str
    config: str
    chain_spec: str
    data_dir: str
    log_file: str
    compose_dir: str
    rpc_url: str
    build_env: dict[str, str] = field(default_factory=dict)


@dataclass
class ReadinessConfig:
    min_blocks: int
    progress_attempts: int
    progress_delay_seconds: float
    protocol_attempts: int
    protocol_delay_seconds: float
    backoff_multiplier: float
    max_delay_seconds: float
    request_timeout_seconds: float


@dataclass
class SuiteConfig:
    workdir: str
    stage_timeout_seconds: float | None
    stages: list[Stage] = field(default_factory=list)


@dataclass
class ReportConfig:
    source_dir: str
    artifact_name: str
    server_url: str


@dataclass
class PublishConfig:
    context: str
    enabled: bool


@dataclass
class GateConfig:
    node: NodeConfig
    readiness: ReadinessConfig = field(
        default_factory=lambda: ReadinessConfig(**READINESS_DEFAULTS),
    )
    suite: SuiteConfig = field(
        default_factory=lambda: SuiteConfig(
            workdir=SUITE_DEFAULTS["workdir"],
            stage_timeout_seconds=None,
            stages=[Stage(**s) for s in STAGE_DEFAULTS],
        ),
    )
    report: ReportConfig = field(
        default_factory=lambda: ReportConfig(**REPORT_DEFAULTS),
    )
    publish: PublishConfig = field(
        default_factory=lambda: PublishConfig(**PUBLISH_DEFAULTS),
    )


def _deep_merge(base: dict, overrides: dict) -> dict:
    merged = dict(base)
    for key, value in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_defaults() -> dict:
    return {
        "node": dict(NODE_DEFAULTS),
        "build_env": dict(BUILD_ENV_DEFAULTS),
        "readiness": dict(READINESS_DEFAULTS),
        "suite": dict(SUITE_DEFAULTS),
        "report": dict(REPORT_DEFAULTS),
        "publish": dict(PUBLISH_DEFAULTS),
        "stage": [dict(s) for s in STAGE_DEFAULTS],
    }


def _config_from_dict(data: dict) -> GateConfig:
    suite_data = data["suite"]
    # 0 means "no per-stage timeout"
    stage_timeout = float(suite_data.get("stage_timeout_seconds") or 0) or None
    stages = [Stage(**s) for s in data["stage"]]
    return GateConfig(
        node=NodeConfig(**data["node"], build_env=dict(data["build_env"])),
        readiness=ReadinessConfig(**data["readiness"]),
        suite=SuiteConfig(
            workdir=suite_data["workdir"],
            stage_timeout_seconds=stage_timeout,
            stages=stages,
        ),
        report=ReportConfig(**data["report"]),
        publish=PublishConfig(**data["publish"]),
    )


def load_config(project_root: Path) -> GateConfig:
    """Load config: source defaults merged with .chaingate/chaingate.toml overrides.

    A ``[[stage]]`` array in the file replaces the default stage list wholesale.
    """
    defaults = _build_defaults()
    toml_path = project_root / CONFIG_DIR / CONFIG_FILENAME

    if not toml_path.is_file():
        return _config_from_dict(defaults)

    try:
        raw = toml_path.read_bytes()
        overrides = tomllib.loads(raw.decode())
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        print(f"Warning: failed to parse {toml_path}: {exc}", file=sys.stderr)
        return _config_from_dict(defaults)

    merged = _deep_merge(defaults, overrides)
    try:
        return _config_from_dict(merged)
    except (TypeError, ValidationError) as exc:
        print(f"Warning: invalid settings in {toml_path}: {exc}", file=sys.stderr)
        return _config_from_dict(defaults)


def init_config(project_root: Path) -> Path:
    """Write .chaingate/chaingate.toml from source defaults. Backup existing."""
    config_dir = project_root / CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists():
        backup_path = config_path.with_suffix(".toml.bak")
        backup_path.write_text(config_path.read_text())

    config_path.write_text(generate_toml())
    return config_path
