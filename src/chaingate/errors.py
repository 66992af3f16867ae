"""Exception hierarchy for a gate run.

Every fatal lifecycle failure derives from :class:`GateError` so the runner can
convert it into a failure verdict while still reaching the reporting phase.
"""

from __future__ import annotations


class GateError(Exception):
    """Base class for chaingate failures."""


class ResolutionError(GateError):
    """The trigger payload could not be parsed or its revision resolved."""


class DeployError(GateError):
    """Cleaning, building or starting the node failed."""


class ReadinessTimeout(GateError):
    """A readiness probe exhausted its attempt budget."""

    def __init__(
        self, probe: str, attempts: int, last_error: str | None = None
    ) -> None:
        self.probe = probe
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"{probe} probe not satisfied after {attempts} attempts{detail}"
        )


class PublishError(GateError):
    """Writing the commit status to the source host failed."""


class ImageError(GateError):
    """Building, pushing or verifying a container image failed."""
