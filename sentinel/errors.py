from __future__ import annotations


class SentinelError(RuntimeError):
    code = "sentinel_error"


class ChannelUnavailable(SentinelError):
    """
    A send (or run submission) was attempted while the push channel is not Open.
    Never queued; the user has to wait for the reconnect and resubmit.
    """

    code = "channel_unavailable"

    def __init__(self, message: str = "WebSocket is not connected.") -> None:
        super().__init__(message)


class RunInFlight(SentinelError):
    code = "run_in_flight"

    def __init__(self, message: str = "A health check run is already in progress.") -> None:
        super().__init__(message)


class InvalidRunTargets(SentinelError):
    code = "invalid_run_targets"


class PullFailure(SentinelError):
    code = "pull_failure"

    def __init__(self, endpoint: str, reason: str, *, status_code: int | None = None) -> None:
        self.endpoint = endpoint
        self.reason = reason
        self.status_code = status_code
        detail = f"{endpoint}: {reason}"
        if status_code is not None:
            detail = f"{endpoint}: http_{status_code}: {reason}"
        super().__init__(detail)
