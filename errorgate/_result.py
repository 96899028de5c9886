import enum
from dataclasses import dataclass
from typing import Optional


class Status(enum.Enum):
    OK = "ok"
    PENDING = "pending"
    QUEUED = "queued"
    SDK_UNAVAILABLE = "sdk_unavailable"
    LOAD_FAILED = "load_failed"
    UNSUPPORTED = "unsupported"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class Result:
    """Outcome of a gateway call. Truthy only when the call took effect."""

    status: Status
    error: Optional[BaseException] = None
    event_id: Optional[str] = None

    def __bool__(self):
        return self.status is Status.OK


OK = Result(Status.OK)
PENDING = Result(Status.PENDING)
QUEUED = Result(Status.QUEUED)
SDK_UNAVAILABLE = Result(Status.SDK_UNAVAILABLE)
UNSUPPORTED = Result(Status.UNSUPPORTED)
