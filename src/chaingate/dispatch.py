"""Trigger classification and revision resolution.

The trigger is parsed once, at the CLI boundary, into a closed
:data:`~chaingate.models.TriggerContext` variant. Nothing downstream looks at
the raw event name or dispatch payload again.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from chaingate.errors import ResolutionError
from chaingate.gh_sync import PullRequestData, checkout_revision, read_pull_request
from chaingate.models import (
    ManualDispatchDirect,
    ManualDispatchPR,
    Push,
    Regression,
    TriggerContext,
)

logger = logging.getLogger(__name__)

REGRESSION_PAYLOAD = "regression"
DISPATCH_EVENT = "workflow_dispatch"
IMPLICIT_EVENTS = frozenset({"push", "merge_group", "schedule"})


def _parse_pr_payload(raw: str) -> ManualDispatchPR:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Dispatch payload is neither 'regression' nor JSON: {exc}"
        raise ResolutionError(msg) from exc
    if not isinstance(data, dict):
        raise ResolutionError("Dispatch payload must be a JSON object")

    repo = data.get("repo")
    issue = data.get("issue")
    if not isinstance(repo, dict) or not isinstance(issue, dict):
        raise ResolutionError("Dispatch payload needs 'repo' and 'issue' objects")

    number = issue.get("number")
    if isinstance(number, bool) or not isinstance(number, int):
        msg = f"Pull request number must be an integer, got {number!r}"
        raise ResolutionError(msg)

    try:
        return ManualDispatchPR(
            owner=repo.get("owner"), repo=repo.get("repo"), pr_number=number
        )
    except ValidationError as exc:
        msg = f"Invalid pull request reference: {exc}"
        raise ResolutionError(msg) from exc


def parse_trigger(
    event_name: str,
    dispatch: str | None = None,
    commit_sha: str | None = None,
) -> TriggerContext:
    """Classify why the run started.

    ``workflow_dispatch`` needs either an explicit *commit_sha* or a *dispatch*
    payload (``regression`` or the JSON of a PR context).
    """
    if event_name == DISPATCH_EVENT:
        if commit_sha and commit_sha.strip():
            return ManualDispatchDirect(revision=commit_sha.strip())
        payload = (dispatch or "").strip()
        if not payload:
            raise ResolutionError("workflow_dispatch without a dispatch payload")
        if payload == REGRESSION_PAYLOAD:
            return Regression()
        return _parse_pr_payload(payload)

    if event_name in IMPLICIT_EVENTS:
        return Push()

    msg = f"Unsupported trigger event: {event_name!r}"
    raise ResolutionError(msg)


def resolve_revision(
    trigger: TriggerContext,
    checkout: Path,
    pr_reader: Callable[[str, str, int], PullRequestData] | None = None,
) -> str:
    """Return the single revision this run validates. Raises ResolutionError."""
    if isinstance(trigger, ManualDispatchPR):
        ref = f"{trigger.owner}/{trigger.repo}#{trigger.pr_number}"
        reader = pr_reader or read_pull_request
        pr = reader(trigger.owner, trigger.repo, trigger.pr_number)
        if not pr.head_sha:
            msg = f"{ref} has no head revision"
            raise ResolutionError(msg)
        logger.info("Resolved %s to %s", ref, pr.head_sha)
        return pr.head_sha
    if isinstance(trigger, ManualDispatchDirect):
        return trigger.revision
    if isinstance(trigger, Regression | Push):
        return checkout_revision(checkout)
    msg = f"Unknown trigger: {trigger!r}"
    raise ResolutionError(msg)
