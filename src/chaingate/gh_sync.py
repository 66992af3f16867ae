from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path

from chaingate.errors import PublishError, ResolutionError


@dataclass
class PullRequestData:
    number: int
    head_sha: str
    head_ref: str
    state: str


def _run(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
    return subprocess.run(args, capture_output=True, text=True, check=True, **kwargs)


def read_pull_request(owner: str, repo: str, number: int) -> PullRequestData:
    """Read a pull request via ``gh api``. The head sha is read at call time."""
    try:
        result = _run(["gh", "api", f"repos/{owner}/{repo}/pulls/{number}"])
        data = json.loads(result.stdout)
        head = data["head"]
        return PullRequestData(
            number=data["number"],
            head_sha=head["sha"],
            head_ref=head.get("ref", ""),
            state=data.get("state", "open"),
        )
    except subprocess.CalledProcessError as exc:
        msg = f"Cannot read {owner}/{repo}#{number}: {exc.stderr or exc}"
        raise ResolutionError(msg) from exc
    except FileNotFoundError as exc:
        raise ResolutionError("gh CLI not found") from exc
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        msg = f"Malformed pull request payload for {owner}/{repo}#{number}"
        raise ResolutionError(msg) from exc


def checkout_revision(checkout: Path) -> str:
    """Commit sha of HEAD in *checkout*."""
    try:
        result = _run(["git", "rev-parse", "HEAD"], cwd=checkout)
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        msg = f"Cannot read the checkout revision in {checkout}"
        raise ResolutionError(msg) from exc
    sha = result.stdout.strip()
    if not sha:
        msg = f"Empty revision in {checkout}"
        raise ResolutionError(msg)
    return sha


def create_commit_status(
    repo: str,
    sha: str,
    state: str,
    context: str,
    target_url: str | None = None,
    description: str | None = None,
) -> dict:
    """Create a commit status via ``gh api``. repo format: 'owner/repo'.

    The source host keeps the latest status per (sha, context).
    """
    cmd = [
        "gh",
        "api",
        "--method",
        "POST",
        f"repos/{repo}/statuses/{sha}",
        "-f",
        f"state={state}",
        "-f",
        f"context={context}",
    ]
    if target_url:
        cmd.extend(["-f", f"target_url={target_url}"])
    if description:
        cmd.extend(["-f", f"description={description[:140]}"])
    try:
        result = _run(cmd)
    except subprocess.CalledProcessError as exc:
        msg = f"Commit status write for {sha} failed: {exc.stderr or exc}"
        raise PublishError(msg) from exc
    except FileNotFoundError as exc:
        raise PublishError("gh CLI not found") from exc
    try:
        return json.loads(result.stdout or "{}")
    except json.JSONDecodeError as exc:
        msg = f"Unreadable reply to the commit status write for {sha}"
        raise PublishError(msg) from exc
