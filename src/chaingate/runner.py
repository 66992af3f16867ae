from __future__ import annotations

import logging
import shutil
import uuid
from datetime import UTC, datetime
from pathlib import Path

from rich.table import Table

from chaingate.config import CONFIG_DIR, GateConfig, load_config
from chaingate.dispatch import resolve_revision
from chaingate.errors import DeployError, GateError
from chaingate.models import (
    PipelineVerdict,
    PublishedStatus,
    RunOutcome,
    RunPhase,
    StageResult,
    TriggerContext,
)
from chaingate.node import Node, make_node
from chaingate.publisher import StatusPublisher
from chaingate.readiness import JsonRpcClient, ReadinessGate
from chaingate.reports import run_url, upload_report
from chaingate.stages import StageRunner, aggregate
from chaingate.state_db import StateDB

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"{datetime.now(UTC):%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8]}"


class GateRunner:
    """One gate run: Clean → Built → Started → Ready → TestsRan → Reported → Done.

    Reporting (bundle upload, status publish, node shutdown, ledger entry)
    happens on every exit path, including fatal setup failures.
    """

    def __init__(
        self,
        project_root: Path,
        trigger: TriggerContext,
        repo: str | None = None,
        run_id: str | None = None,
        checkout: Path | None = None,
        skip_build: bool = False,
        config: GateConfig | None = None,
    ) -> None:
        self.project_root = project_root
        self.trigger = trigger
        self.repo = repo
        self.run_id = run_id or new_run_id()
        self.checkout = checkout or project_root
        self.skip_build = skip_build
        self.config = config or load_config(project_root)
        self.state_dir = project_root / CONFIG_DIR
        self.run_dir = self.state_dir / "runs" / self.run_id
        self.db = StateDB(self.state_dir / "state.db")
        self.node: Node | None = None
        self.rpc = JsonRpcClient(
            self.config.node.rpc_url,
            timeout=self.config.readiness.request_timeout_seconds,
        )
        self.gate = ReadinessGate(self.rpc, self.config.readiness)
        self.publisher = StatusPublisher(
            repo=repo,
            context=self.config.publish.context,
            db=self.db,
            enabled=self.config.publish.enabled,
        )
        self.phase = RunPhase.CLEAN

    def _advance(self, phase: RunPhase) -> None:
        logger.debug("Run %s: %s -> %s", self.run_id, self.phase.value, phase.value)
        self.phase = phase

    def _clean(self) -> None:
        """Remove everything an earlier run with this id or node left behind."""
        if self.run_dir.exists():
            try:
                shutil.rmtree(self.run_dir)
            except OSError as exc:
                msg = f"Cannot remove {self.run_dir}: {exc}"
                raise DeployError(msg) from exc
        self.node = make_node(self.config.node, self.checkout)
        self.node.clean()
        self._advance(RunPhase.CLEAN)

    def _stage_runner(self) -> StageRunner:
        return StageRunner(
            workdir=self.checkout / self.config.suite.workdir,
            report_dir=self.run_dir / "report",
            default_timeout=self.config.suite.stage_timeout_seconds,
        )

    def run(self) -> RunOutcome:
        revision: str | None = None
        results: list[StageResult] = []
        readiness_ok = False
        error: str | None = None
        completed = False

        logger.info("Run %s started (trigger: %s)", self.run_id, self.trigger.kind)
        try:
            revision = resolve_revision(self.trigger, self.checkout)
            logger.info("Validating revision %s", revision)

            self._clean()
            if not self.skip_build:
                self.node.build()
            self._advance(RunPhase.BUILT)

            self.node.start()
            self._advance(RunPhase.STARTED)

            self.gate.wait()
            readiness_ok = True
            self._advance(RunPhase.READY)

            results = self._stage_runner().run(self.config.suite.stages)
            self._advance(RunPhase.TESTS_RAN)
            self.gate.node_status()
            completed = True
        except GateError as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error("Run %s aborted in %s: %s", self.run_id, self.phase.value, error)
            completed = True
        finally:
            if not completed:
                error = "run interrupted"
            verdict = aggregate(readiness_ok, results, self.phase, error)
            outcome = self._finalize(revision, verdict)
        return outcome

    def _finalize(self, revision: str | None, verdict: PipelineVerdict) -> RunOutcome:
        report_path: Path | None = None
        published: PublishedStatus | None = None
        try:
            try:
                report_path = upload_report(
                    self.run_dir,
                    self.checkout / self.config.report.source_dir,
                    verdict,
                    self.config.report.artifact_name,
                )
            except OSError as exc:
                logger.error("Uploading the report bundle failed: %s", exc)

            url = run_url(self.config.report.server_url, self.repo, self.run_id)
            published = self.publisher.publish(self.trigger, revision, verdict, url)
        finally:
            try:
                self._shutdown()
            finally:
                outcome = self._record(revision, verdict, published, report_path)
        self._advance(RunPhase.DONE)
        logger.info("Run %s finished: %s", self.run_id, verdict.state)
        return outcome

    def _shutdown(self) -> None:
        try:
            if self.node is not None:
                self.node.stop()
        finally:
            self.rpc.close()
            self._advance(RunPhase.REPORTED)

    def _record(
        self,
        revision: str | None,
        verdict: PipelineVerdict,
        published: PublishedStatus | None,
        report_path: Path | None,
    ) -> RunOutcome:
        outcome = RunOutcome(
            run_id=self.run_id,
            trigger=self.trigger,
            revision=revision,
            verdict=verdict,
            published=published,
            report_path=str(report_path) if report_path else None,
        )
        try:
            self.db.record_run(outcome)
        finally:
            self.db.close()
        return outcome


def render_summary(outcome: RunOutcome) -> Table:
    verdict = outcome.verdict
    style = "bold green" if verdict.success else "bold red"
    table = Table(title=f"Run {outcome.run_id} ({outcome.revision or 'unresolved'})")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Stage")
    table.add_column("Exit", justify="right")
    table.add_column("Duration", justify="right", style="dim")

    for r in verdict.stage_results:
        exit_style = "green" if r.succeeded else "red"
        table.add_row(
            str(r.position),
            r.stage_name,
            f"[{exit_style}]{r.exit_status}[/]",
            f"{r.duration:.1f}s",
        )

    caption = f"[{style}]{verdict.state}[/] | {verdict.describe()}"
    table.caption = caption + _published_caption(outcome.published)
    return table


def _published_caption(published: PublishedStatus | None) -> str:
    if published is None:
        return " | status not published"
    return f" | published to {published.context}"
