import logging

from errors import ChartLensError, InvalidTransition
from models import AnalysisResult, CapturedImage, SessionState

logger = logging.getLogger(__name__)

S = SessionState

# event -> (allowed source states, target state)
TRANSITIONS = {
    "begin_permission": ({S.IDLE}, S.PERMISSION_PENDING),
    "camera_started": ({S.IDLE, S.PERMISSION_PENDING}, S.CAMERA_ACTIVE),
    "permission_failed": ({S.IDLE, S.PERMISSION_PENDING}, S.IDLE),
    "camera_cancelled": ({S.CAMERA_ACTIVE}, S.IDLE),
    "image_captured": ({S.IDLE, S.CAMERA_ACTIVE}, S.IMAGE_CAPTURED),
    "begin_analysis": ({S.IMAGE_CAPTURED}, S.ANALYZING),
    "complete": ({S.ANALYZING}, S.RESULT),
    "fail": ({S.ANALYZING}, S.ERROR),
    "reset": ({S.IDLE, S.RESULT, S.ERROR}, S.IDLE),
}


class Session:
    """Session-level state driving which component is active.

    Holds the transient fields shown to the user: the captured image, the
    validated result, the terminal error and any locally recovered notice.
    """

    def __init__(self):
        self.state = S.IDLE
        self.image: CapturedImage | None = None
        self.result: AnalysisResult | None = None
        self.error: ChartLensError | None = None
        self.notice: str | None = None
        self.fallback_offered = False

    def _move(self, event: str) -> None:
        sources, target = TRANSITIONS[event]
        if self.state not in sources:
            raise InvalidTransition(f"Cannot '{event}' while {self.state.value}")
        logger.debug("Session %s: %s -> %s", event, self.state.value, target.value)
        self.state = target

    @property
    def is_busy(self) -> bool:
        return self.state is S.ANALYZING

    def begin_permission(self) -> None:
        self._move("begin_permission")
        self.notice = None
        self.fallback_offered = False

    def camera_started(self) -> None:
        self._move("camera_started")
        self.notice = None
        self.fallback_offered = False

    def permission_failed(self, message: str, fallback: bool = True) -> None:
        self._move("permission_failed")
        self.notice = message
        self.fallback_offered = fallback

    def camera_cancelled(self) -> None:
        self._move("camera_cancelled")

    def local_error(self, message: str) -> None:
        """Record a locally recoverable problem without leaving the current state."""
        if self.is_busy:
            raise InvalidTransition("Cannot report a local error while analyzing")
        self.notice = message

    def image_captured(self, image: CapturedImage) -> None:
        self._move("image_captured")
        self.image = image
        self.notice = None

    def begin_analysis(self) -> None:
        self._move("begin_analysis")
        self.result = None
        self.error = None

    def complete(self, result: AnalysisResult) -> None:
        self._move("complete")
        self.result = result

    def fail(self, error: ChartLensError) -> None:
        self._move("fail")
        self.error = error

    def reset(self) -> None:
        self._move("reset")
        self.image = None
        self.result = None
        self.error = None
        self.notice = None
        self.fallback_offered = False
