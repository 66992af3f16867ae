from __future__ import annotations

import logging
import platform
import shutil
from pathlib import Path

from chaingate.models import PipelineVerdict

logger = logging.getLogger(__name__)


def run_url(server_url: str, repository: str | None, run_id: str) -> str | None:
    """Link shown next to the commit status. None without a repository."""
    if not repository:
        return None
    return f"{server_url.rstrip('/')}/{repository}/actions/runs/{run_id}"


def artifact_label(name: str) -> str:
    return f"{name}-{platform.system()}"


def upload_report(
    run_dir: Path,
    source_dir: Path,
    verdict: PipelineVerdict,
    artifact_name: str,
) -> Path:
    """Bundle suite reports, stage logs and the verdict summary into one zip.

    A missing *source_dir* (setup never completed) still yields a bundle with
    the summary and whatever stage logs exist.
    """
    staging = run_dir / "report"
    staging.mkdir(parents=True, exist_ok=True)

    if source_dir.is_dir():
        shutil.copytree(source_dir, staging / source_dir.name, dirs_exist_ok=True)
    else:
        logger.warning("No suite report at %s", source_dir)

    (staging / "summary.json").write_text(verdict.model_dump_json(indent=2))

    archive = shutil.make_archive(
        str(run_dir / artifact_label(artifact_name)), "zip", root_dir=staging
    )
    logger.info("Report bundle written to %s", archive)
    return Path(archive)
