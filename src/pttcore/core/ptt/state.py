from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

GENERIC_ERROR_MESSAGE = "Unknown capture error"


class CaptureStatus(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    CAPTURING = "capturing"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass(frozen=True)
class CaptureState:
    status: CaptureStatus = CaptureStatus.IDLE
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> "CaptureState":
        return cls(CaptureStatus.IDLE)

    @classmethod
    def armed(cls) -> "CaptureState":
        return cls(CaptureStatus.ARMED)

    @classmethod
    def capturing(cls) -> "CaptureState":
        return cls(CaptureStatus.CAPTURING)

    @classmethod
    def processing(cls) -> "CaptureState":
        return cls(CaptureStatus.PROCESSING)

    @classmethod
    def error(cls, message: str) -> "CaptureState":
        return cls(CaptureStatus.ERROR, message or GENERIC_ERROR_MESSAGE)

    def to_wire(self) -> Union[str, dict]:
        if self.status is CaptureStatus.ERROR:
            return {"error": {"message": self.message or GENERIC_ERROR_MESSAGE}}
        return self.status.value

    def __str__(self) -> str:
        if self.status is CaptureStatus.ERROR:
            return f"error({self.message})"
        return self.status.value
