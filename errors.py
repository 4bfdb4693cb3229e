from enum import Enum


class PermissionFailure(Enum):
    DENIED = "denied"
    NO_DEVICE = "no_device"
    DEVICE_BUSY = "device_busy"
    CONSTRAINTS_UNSATISFIABLE = "constraints_unsatisfiable"
    OTHER = "other"


class ResponseFailure(Enum):
    EMPTY = "empty"
    NO_JSON = "no_json"
    MALFORMED = "malformed"
    SCHEMA = "schema"


class ChartLensError(Exception):
    """Base class for every session-scoped failure."""


class MediaAccessError(ChartLensError):
    """Raised by a media device when a stream cannot be acquired.

    ``name`` follows the media-capture error names (NotAllowedError,
    NotFoundError, NotReadableError, OverconstrainedError, ...).
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or name)
        self.name = name


class CameraPermissionError(ChartLensError):
    def __init__(self, failure: PermissionFailure, message: str):
        super().__init__(message)
        self.failure = failure


class InputError(ChartLensError):
    pass


class InvalidFileType(InputError):
    pass


class UnreadableFile(InputError):
    pass


class CaptureError(InputError):
    pass


class ServiceError(ChartLensError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ResponseError(ChartLensError):
    def __init__(self, reason: ResponseFailure, message: str):
        super().__init__(message)
        self.reason = reason


class InvalidTransition(ChartLensError):
    pass


class AnalysisInProgress(ChartLensError):
    pass
