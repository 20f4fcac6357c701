"""Error taxonomy for council runs."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error a council run can surface."""


class InputError(PipelineError):
    """Caller inputs were rejected before the state machine was entered."""


class RestartConfirmationRequired(InputError):
    """start() was called on a completed run without confirming the restart."""

    def __init__(self):
        super().__init__(
            "A completed report exists. Pass confirm_restart=True to clear it and start a new analysis."
        )


class PipelineBusyError(PipelineError):
    """A run is already in progress."""


class ServiceError(PipelineError):
    """The reasoning service failed (network, auth, rate limit, timeout, empty reply)."""


class SchemaValidationError(PipelineError):
    """A reasoning-service payload did not match the expected shape."""

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage}: response failed validation ({reason})")


class JudgePartialFailure(PipelineError):
    """One or more persona judgments failed, so the whole Judge stage failed."""

    def __init__(self, failures: dict[str, BaseException], total: int):
        self.failures = failures
        self.total = total
        detail = "; ".join(f"{pid}: {exc}" for pid, exc in failures.items())
        super().__init__(
            f"{len(failures)} of {total} persona judgment(s) failed: {detail}"
        )
