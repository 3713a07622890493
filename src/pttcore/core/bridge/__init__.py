from .client import SurfaceClient
from .commands import CommandBridge
from .events import (
    BACKEND_LOG_EVENT,
    MODEL_STATUS_EVENT,
    PTT_ERROR_EVENT,
    PTT_STATE_EVENT,
    PTT_TRANSCRIPTION_EVENT,
    BridgeEvent,
    EventBus,
    Subscription,
)
