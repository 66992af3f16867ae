from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from chaingate.config import (
    GateConfig,
    NodeConfig,
    PublishConfig,
    ReadinessConfig,
    ReportConfig,
    SuiteConfig,
)
from chaingate.defaults import BUILD_ENV_DEFAULTS, NODE_DEFAULTS
from chaingate.models import Stage, TriggerContext
from chaingate.readiness import JsonRpcClient, ReadinessGate
from chaingate.runner import GateRunner


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "axon"
    (root / "suite" / "report").mkdir(parents=True)
    (root / "suite" / "report" / "index.html").write_text("<html/>")
    return root


@pytest.fixture()
def config() -> GateConfig:
    return GateConfig(
        node=NodeConfig(**NODE_DEFAULTS, build_env=dict(BUILD_ENV_DEFAULTS)),
        readiness=ReadinessConfig(
            min_blocks=2,
            progress_attempts=3,
            progress_delay_seconds=0,
            protocol_attempts=2,
            protocol_delay_seconds=0,
            backoff_multiplier=1.0,
            max_delay_seconds=60.0,
            request_timeout_seconds=1.0,
        ),
        suite=SuiteConfig(
            workdir="suite",
            stage_timeout_seconds=None,
            stages=[
                Stage(name="prepare", command="true"),
                Stage(name="pipeline5-16", command="true"),
                Stage(name="pipeline5-17", command="true"),
            ],
        ),
        report=ReportConfig(
            source_dir="suite/report",
            artifact_name="reports",
            server_url="https://github.com",
        ),
        publish=PublishConfig(context="OCT 16-19", enabled=True),
    )


def chain_transport(heights: list[int | Exception], version: str = "axon/0.3.0") -> httpx.MockTransport:
    """Fake node: block heights in order (the last one repeats), fixed client version."""
    remaining = list(heights)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "eth_blockNumber":
            item = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            if isinstance(item, Exception):
                raise item
            result: object = hex(item)
        else:
            result = version
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return httpx.MockTransport(handler)


@pytest.fixture()
def node() -> Iterator[MagicMock]:
    mock_node = MagicMock()
    with patch("chaingate.runner.make_node", return_value=mock_node) as mock_make:
        mock_node.factory = mock_make
        yield mock_node


@pytest.fixture()
def status_writer() -> Iterator[MagicMock]:
    with patch("chaingate.publisher.create_commit_status", return_value={}) as mock_write:
        yield mock_write


@pytest.fixture()
def make_runner(
    project_root: Path, config: GateConfig
) -> Callable[..., GateRunner]:
    def factory(
        trigger: TriggerContext,
        heights: list[int | Exception] | None = None,
        run_id: str = "run-1",
        repo: str | None = "axonweb3/axon",
    ) -> GateRunner:
        runner = GateRunner(
            project_root=project_root,
            trigger=trigger,
            repo=repo,
            run_id=run_id,
            config=config,
        )
        runner.rpc.close()
        runner.rpc = JsonRpcClient(
            config.node.rpc_url, transport=chain_transport(heights or [5, 7])
        )
        runner.gate = ReadinessGate(runner.rpc, config.readiness, sleep=MagicMock())
        return runner

    return factory
