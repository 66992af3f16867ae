from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from chaingate.models import PipelineVerdict, RunPhase, Stage, StageResult, stage_key

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_NOT_STARTED = 127


class StageRunner:
    """Runs stages one after another against the already-ready node.

    Each stage's combined output goes to ``report_dir/logs/{key}.log``.
    """

    def __init__(
        self,
        workdir: Path,
        report_dir: Path,
        env: Mapping[str, str] | None = None,
        default_timeout: float | None = None,
    ) -> None:
        self.workdir = workdir
        self.report_dir = report_dir
        self.env = dict(env) if env is not None else None
        self.default_timeout = default_timeout

    def _log_path(self, position: int, stage: Stage) -> Path:
        log_dir = self.report_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / f"{stage_key(position, stage.name)}.log"

    def _cwd(self, stage: Stage) -> Path:
        if stage.cwd is None:
            return self.workdir
        return self.workdir / stage.cwd

    def run_stage(self, position: int, stage: Stage) -> StageResult:
        log_path = self._log_path(position, stage)
        timeout = stage.timeout_seconds or self.default_timeout
        env = {**os.environ, **self.env} if self.env is not None else None
        started_at = datetime.now(UTC)
        start = time.monotonic()
        error: str | None = None

        logger.info("Stage %s: %s", stage.name, stage.command)
        with log_path.open("w") as log:
            try:
                proc = subprocess.run(
                    ["bash", "-c", stage.command],
                    cwd=self._cwd(stage),
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    timeout=timeout,
                )
                exit_status = proc.returncode
            except subprocess.TimeoutExpired:
                exit_status = EXIT_TIMEOUT
                error = f"timed out after {timeout}s"
            except OSError as exc:
                exit_status = EXIT_NOT_STARTED
                error = f"could not start: {exc}"

        duration = time.monotonic() - start
        if exit_status == 0:
            logger.info("Stage %s passed in %.1fs", stage.name, duration)
        else:
            logger.error(
                "Stage %s failed with exit status %d%s",
                stage.name,
                exit_status,
                f" ({error})" if error else "",
            )
        return StageResult(
            stage_name=stage.name,
            position=position,
            exit_status=exit_status,
            duration=duration,
            started_at=started_at,
            log_path=str(log_path),
            error=error,
        )

    def run(self, stages: Iterable[Stage]) -> list[StageResult]:
        """Run every stage in order, continuing past failures where allowed."""
        results: list[StageResult] = []
        for position, stage in enumerate(stages):
            result = self.run_stage(position, stage)
            results.append(result)
            if not result.succeeded and not stage.continue_on_stage_failure:
                logger.warning("Stage %s is blocking, skipping the rest", stage.name)
                break
        return results


def aggregate(
    readiness_ok: bool,
    results: list[StageResult],
    phase_reached: RunPhase = RunPhase.TESTS_RAN,
    error: str | None = None,
) -> PipelineVerdict:
    """Fold readiness and stage results into one verdict.

    Any failed stage fails the run even though later stages still ran.
    """
    success = readiness_ok and error is None and all(r.succeeded for r in results)
    return PipelineVerdict(
        success=success,
        readiness_ok=readiness_ok,
        phase_reached=phase_reached,
        stage_results=list(results),
        error=error,
    )
