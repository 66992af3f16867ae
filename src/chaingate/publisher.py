from __future__ import annotations

import logging
from collections.abc import Callable

from chaingate.errors import PublishError
from chaingate.gh_sync import create_commit_status
from chaingate.models import PipelineVerdict, PublishedStatus, TriggerContext
from chaingate.state_db import StateDB

logger = logging.getLogger(__name__)

StatusWriter = Callable[..., object]


class StatusPublisher:
    """Reports a verdict as a commit status on the requesting repository.

    Only triggers that expect a reply are published. The commit-status write
    is keyed by (revision, context) on the source host, so re-running a
    pipeline overwrites the earlier status.
    """

    def __init__(
        self,
        repo: str | None,
        context: str,
        db: StateDB | None = None,
        enabled: bool = True,
        writer: StatusWriter | None = None,
    ) -> None:
        self.repo = repo
        self.context = context
        self.db = db
        self.enabled = enabled
        self._writer = writer

    def publish(
        self,
        trigger: TriggerContext,
        revision: str | None,
        verdict: PipelineVerdict,
        report_url: str | None = None,
    ) -> PublishedStatus | None:
        if not trigger.expects_reply:
            logger.info("Trigger %s expects no reply, status not published", trigger.kind)
            return None
        if not self.enabled:
            logger.info("Status publishing disabled")
            return None
        if revision is None:
            logger.warning("No revision resolved, nothing to publish")
            return None
        if not self.repo:
            logger.error("No repository configured, cannot publish status for %s", revision)
            return None

        status = PublishedStatus(
            revision=revision,
            context=self.context,
            state=verdict.state,
            report_url=report_url,
            description=verdict.describe(),
        )
        try:
            write = self._writer or create_commit_status
            write(
                self.repo,
                status.revision,
                status.state,
                status.context,
                target_url=status.report_url,
                description=status.description,
            )
        except PublishError as exc:
            logger.error("Publishing status for %s failed: %s", revision, exc)
            return None

        if self.db is not None:
            self.db.upsert_status(status)
        logger.info("Published %s for %s (%s)", status.state, revision, self.context)
        return status
