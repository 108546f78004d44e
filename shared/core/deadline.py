import time

from fastapi import Request

from shared.core.errors import DeadlineExceededError


class Deadline:
    """Wall-clock budget for one request's unit of work."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self):
        if self.expired():
            raise DeadlineExceededError(
                f"Request deadline of {self.seconds:g}s exceeded; transaction aborted")


def request_deadline(request: Request) -> Deadline:
    return Deadline(request.app.state.settings.REQUEST_TIMEOUT_SECONDS)


def rebuild_deadline(request: Request) -> Deadline:
    return Deadline(request.app.state.settings.REBUILD_TIMEOUT_SECONDS)
