from .state import GENERIC_ERROR_MESSAGE, CaptureState, CaptureStatus

__all__ = ["GENERIC_ERROR_MESSAGE", "CaptureState", "CaptureStatus"]
