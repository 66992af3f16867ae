"""Pydantic models defining the data exchanged between gate components.

A run is described by one :data:`TriggerContext`, resolved into a single
revision, and produces :class:`StageResult` records that aggregate into a
:class:`PipelineVerdict`. Models serialize to JSON so the run summary can be
dropped into the report bundle.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ManualDispatchDirect(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["manual_direct"] = "manual_direct"
    revision: str = Field(min_length=1)

    @property
    def expects_reply(self) -> bool:
        return True


class ManualDispatchPR(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["manual_pr"] = "manual_pr"
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    pr_number: int = Field(gt=0)

    @property
    def expects_reply(self) -> bool:
        return True


class Regression(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["regression"] = "regression"

    @property
    def expects_reply(self) -> bool:
        return False


class Push(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["push"] = "push"

    @property
    def expects_reply(self) -> bool:
        return False


TriggerContext = Annotated[
    ManualDispatchDirect | ManualDispatchPR | Regression | Push,
    Field(discriminator="kind"),
]


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)
    continue_on_stage_failure: bool = True
    timeout_seconds: float | None = None
    cwd: str | None = None


class StageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage_name: str
    position: int
    exit_status: int
    duration: float
    started_at: datetime
    log_path: str | None = None
    error: str | None = None

    @property
    def key(self) -> str:
        return stage_key(self.position, self.stage_name)

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class RunPhase(str, Enum):
    CLEAN = "clean"
    BUILT = "built"
    STARTED = "started"
    READY = "ready"
    TESTS_RAN = "tests_ran"
    REPORTED = "reported"
    DONE = "done"


class PipelineVerdict(BaseModel):
    success: bool
    readiness_ok: bool
    phase_reached: RunPhase
    stage_results: list[StageResult] = Field(default_factory=list)
    error: str | None = None

    @property
    def state(self) -> str:
        return "success" if self.success else "failure"

    @property
    def setup_completed(self) -> bool:
        return self.readiness_ok

    def describe(self) -> str:
        if not self.setup_completed:
            return f"Setup never completed: {self.error or 'unknown error'}"
        if self.error:
            return f"Run aborted: {self.error}"
        failed = [r.stage_name for r in self.stage_results if not r.succeeded]
        if failed:
            return f"Failed stages: {', '.join(failed)}"
        return f"All {len(self.stage_results)} stages passed"


class PublishedStatus(BaseModel):
    revision: str
    context: str
    state: Literal["success", "failure", "error", "pending"]
    report_url: str | None = None
    description: str = ""


class RunOutcome(BaseModel):
    run_id: str
    trigger: TriggerContext
    revision: str | None
    verdict: PipelineVerdict
    published: PublishedStatus | None = None
    report_path: str | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.verdict.success else 1


def stage_key(position: int, name: str) -> str:
    return f"{position:02d}-{name}"
