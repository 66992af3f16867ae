from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from chaingate.errors import PublishError
from chaingate.models import (
    ManualDispatchDirect,
    ManualDispatchPR,
    PipelineVerdict,
    Push,
    Regression,
    RunPhase,
)
from chaingate.publisher import StatusPublisher
from chaingate.stages import aggregate
from chaingate.state_db import StateDB

CONTEXT = "OCT 16-19"
URL = "https://github.com/axonweb3/axon/actions/runs/42"


@pytest.fixture()
def db(tmp_path: Path) -> StateDB:
    return StateDB(tmp_path / "state.db")


@pytest.fixture()
def writer() -> MagicMock:
    return MagicMock(return_value={})


def _passed() -> PipelineVerdict:
    return aggregate(True, [])


def _failed() -> PipelineVerdict:
    return aggregate(False, [], RunPhase.STARTED, "DeployError: boom")


class TestSuppression:
    @pytest.mark.parametrize("trigger", [Regression(), Push()])
    @pytest.mark.parametrize("verdict", [_passed(), _failed()])
    def test_no_external_writes(
        self, trigger: object, verdict: PipelineVerdict, writer: MagicMock, db: StateDB
    ) -> None:
        publisher = StatusPublisher("axonweb3/axon", CONTEXT, db=db, writer=writer)

        assert publisher.publish(trigger, "abc123", verdict, URL) is None
        writer.assert_not_called()
        assert db.list_statuses() == []

    def test_disabled(self, writer: MagicMock) -> None:
        publisher = StatusPublisher("o/r", CONTEXT, enabled=False, writer=writer)
        assert publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _passed()) is None
        writer.assert_not_called()

    def test_unknown_revision(self, writer: MagicMock) -> None:
        publisher = StatusPublisher("o/r", CONTEXT, writer=writer)
        trigger = ManualDispatchPR(owner="o", repo="r", pr_number=3)
        assert publisher.publish(trigger, None, _failed()) is None
        writer.assert_not_called()

    def test_missing_repo(self, writer: MagicMock) -> None:
        publisher = StatusPublisher(None, CONTEXT, writer=writer)
        assert publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _passed()) is None
        writer.assert_not_called()


class TestPublish:
    def test_writes_commit_status(self, writer: MagicMock, db: StateDB) -> None:
        publisher = StatusPublisher("axonweb3/axon", CONTEXT, db=db, writer=writer)
        trigger = ManualDispatchPR(owner="axonweb3", repo="axon", pr_number=1612)

        status = publisher.publish(trigger, "abc123", _passed(), URL)

        assert status is not None
        assert status.state == "success"
        writer.assert_called_once_with(
            "axonweb3/axon",
            "abc123",
            "success",
            CONTEXT,
            target_url=URL,
            description="All 0 stages passed",
        )
        row = db.get_status("abc123", CONTEXT)
        assert row is not None
        assert row["state"] == "success"
        assert row["report_url"] == URL

    def test_failure_description(self, writer: MagicMock) -> None:
        publisher = StatusPublisher("o/r", CONTEXT, writer=writer)
        status = publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _failed())
        assert status is not None
        assert status.state == "failure"
        assert "Setup never completed" in status.description

    def test_last_write_wins(self, writer: MagicMock, db: StateDB) -> None:
        publisher = StatusPublisher("o/r", CONTEXT, db=db, writer=writer)
        trigger = ManualDispatchDirect(revision="abc123")

        publisher.publish(trigger, "abc123", _passed(), URL)
        publisher.publish(trigger, "abc123", _failed(), URL)

        rows = db.list_statuses("abc123")
        assert len(rows) == 1
        assert rows[0]["state"] == "failure"
        assert [c.args[2] for c in writer.call_args_list] == ["success", "failure"]

    def test_publish_error_is_logged_not_raised(
        self, db: StateDB, caplog: pytest.LogCaptureFixture
    ) -> None:
        writer = MagicMock(side_effect=PublishError("403 Forbidden"))
        publisher = StatusPublisher("o/r", CONTEXT, db=db, writer=writer)

        result = publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _passed())

        assert result is None
        assert writer.call_count == 1
        assert db.list_statuses() == []
        assert "403 Forbidden" in caplog.text

    @patch("chaingate.publisher.create_commit_status")
    def test_default_writer_is_gh(self, mock_create: MagicMock) -> None:
        publisher = StatusPublisher("o/r", CONTEXT)
        publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _passed())
        mock_create.assert_called_once()

    @patch("chaingate.gh_sync._run")
    def test_unreadable_gh_reply_is_logged_not_raised(
        self, mock_run: MagicMock, db: StateDB
    ) -> None:
        mock_run.return_value = MagicMock(stdout="oops not json")
        publisher = StatusPublisher("o/r", CONTEXT, db=db)

        assert publisher.publish(ManualDispatchDirect(revision="abc"), "abc", _passed()) is None
        assert db.list_statuses() == []
