from __future__ import annotations

import json
import zipfile
from pathlib import Path
from unittest.mock import patch

from chaingate.models import RunPhase
from chaingate.reports import artifact_label, run_url, upload_report
from chaingate.stages import aggregate


class TestRunUrl:
    def test_builds_actions_url(self) -> None:
        assert (
            run_url("https://github.com/", "axonweb3/axon", "42")
            == "https://github.com/axonweb3/axon/actions/runs/42"
        )

    def test_no_repository(self) -> None:
        assert run_url("https://github.com", None, "42") is None


class TestUploadReport:
    @patch("chaingate.reports.platform.system", return_value="Linux")
    def test_bundles_suite_report_and_summary(self, _system: object, tmp_path: Path) -> None:
        source = tmp_path / "mochawesome-report"
        source.mkdir()
        (source / "index.html").write_text("<html/>")
        run_dir = tmp_path / "runs" / "r1"

        archive = upload_report(run_dir, source, aggregate(True, []), "jfoa-build-reports")

        assert archive == run_dir / "jfoa-build-reports-Linux.zip"
        with zipfile.ZipFile(archive) as zf:
            names = set(zf.namelist())
            summary = json.loads(zf.read("summary.json"))
        assert "mochawesome-report/index.html" in names
        assert summary["success"] is True

    def test_missing_suite_report_still_bundles(self, tmp_path: Path) -> None:
        run_dir = tmp_path / "runs" / "r2"
        verdict = aggregate(False, [], RunPhase.BUILT, "DeployError: cargo failed")

        archive = upload_report(run_dir, tmp_path / "nope", verdict, "reports")

        with zipfile.ZipFile(archive) as zf:
            summary = json.loads(zf.read("summary.json"))
        assert summary["stage_results"] == []
        assert summary["error"] == "DeployError: cargo failed"

    def test_stage_logs_included(self, tmp_path: Path) -> None:
        run_dir = tmp_path / "runs" / "r3"
        logs = run_dir / "report" / "logs"
        logs.mkdir(parents=True)
        (logs / "00-prepare.log").write_text("ok")

        archive = upload_report(run_dir, tmp_path / "nope", aggregate(True, []), "reports")

        with zipfile.ZipFile(archive) as zf:
            assert "logs/00-prepare.log" in zf.namelist()


def test_artifact_label_includes_os() -> None:
    with patch("chaingate.reports.platform.system", return_value="Linux"):
        assert artifact_label("reports") == "reports-Linux"
