import base64
import io
import logging
import mimetypes
from pathlib import Path
from typing import Iterator, Protocol

import cv2
from PIL import Image

from config import CAMERA_INDEX, CAMERA_REAR_INDEX, JPEG_QUALITY
from errors import CaptureError, InvalidFileType, InvalidTransition, MediaAccessError, UnreadableFile
from models import CapturedImage, MediaConstraints

logger = logging.getLogger(__name__)


class MediaStream(Protocol):
    def read(self) -> tuple[bool, object]: ...

    def frame_size(self) -> tuple[int, int]: ...

    def stop(self) -> None: ...


class MediaDevices(Protocol):
    def get_user_media(self, constraints: MediaConstraints) -> MediaStream: ...

    def query_permission(self) -> str | None: ...


class OpenCVStream:
    """Live stream backed by a ``cv2.VideoCapture``."""

    def __init__(self, cap: cv2.VideoCapture):
        self._cap = cap

    def read(self):
        return self._cap.read()

    def frame_size(self) -> tuple[int, int]:
        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return width, height

    def stop(self) -> None:
        self._cap.release()


class OpenCVMediaDevices:
    """Acquire camera streams through OpenCV.

    The rear-facing camera is whichever device index ``rear_index`` points
    at; a request for it that cannot be met while the default device works
    is reported as ``OverconstrainedError`` so the caller can relax.
    """

    def __init__(self, default_index: int = CAMERA_INDEX, rear_index: int = CAMERA_REAR_INDEX):
        self.default_index = default_index
        self.rear_index = rear_index

    @staticmethod
    def _open(index: int) -> cv2.VideoCapture | None:
        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            return None
        return cap

    def get_user_media(self, constraints: MediaConstraints) -> OpenCVStream:
        index = self.rear_index if constraints.facing_mode == "environment" else self.default_index
        cap = self._open(index)
        if cap is None:
            if not constraints.is_minimal and index != self.default_index:
                default_cap = self._open(self.default_index)
                if default_cap is not None:
                    default_cap.release()
                    raise MediaAccessError(
                        "OverconstrainedError",
                        f"No camera satisfies facing mode {constraints.facing_mode!r}",
                    )
            raise MediaAccessError("NotFoundError", "No camera found")

        if constraints.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        if constraints.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        ok, _ = cap.read()
        if not ok:
            cap.release()
            raise MediaAccessError("NotReadableError", "Camera is in use or could not start")

        logger.info("Camera %d opened", index)
        return OpenCVStream(cap)

    def query_permission(self) -> str | None:
        # OpenCV exposes no permission status; the request itself decides.
        return None


class CameraSession:
    """Handle owning one live stream until ``release`` is called.

    ``release`` is the only path that stops the stream and is idempotent.
    """

    def __init__(self, stream: MediaStream, on_release=None):
        self._stream = stream
        self._on_release = on_release

    @property
    def live(self) -> bool:
        return self._stream is not None

    @property
    def stream(self) -> MediaStream:
        if self._stream is None:
            raise CaptureError("Camera session already released")
        return self._stream

    def release(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            if self._on_release:
                self._on_release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def encode_frame(frame, width: int, height: int, quality: float = JPEG_QUALITY) -> str:
    """Paint ``frame`` into a ``width`` x ``height`` buffer and return a JPEG data URI."""
    if frame.shape[1] != width or frame.shape[0] != height:
        frame = cv2.resize(frame, (width, height))
    ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(round(quality * 100))])
    if not ok:
        raise CaptureError("Failed to encode captured frame")
    return "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


class CaptureController:
    """Owns the camera session and turns frames or files into ``CapturedImage``."""

    def __init__(self):
        self._session: CameraSession | None = None
        self.acquired = 0
        self.released = 0

    @property
    def active(self) -> bool:
        return self._session is not None and self._session.live

    def _on_release(self) -> None:
        self.released += 1

    def activate(self, stream: MediaStream) -> None:
        if self.active:
            stream.stop()
            raise InvalidTransition("A camera session is already live; release it first")
        self._session = CameraSession(stream, on_release=self._on_release)
        self.acquired += 1

    def preview(self) -> Iterator:
        """Yield live frames until the stream stops delivering or is released."""
        while self.active:
            ok, frame = self._session.stream.read()
            if not ok or frame is None:
                logger.warning("Camera stopped delivering frames")
                return
            yield frame

    def capture(self) -> CapturedImage:
        if not self.active:
            raise CaptureError("No active camera to capture from")
        try:
            stream = self._session.stream
            width, height = stream.frame_size()
            ok, frame = stream.read()
            if not ok or frame is None:
                raise CaptureError("Failed to read a frame from the camera")
            if width <= 0 or height <= 0:
                height, width = frame.shape[:2]
            data_uri = encode_frame(frame, width, height)
        finally:
            self.release()
        return CapturedImage(
            data_uri=data_uri, mime_type="image/jpeg", source="camera", width=width, height=height
        )

    def cancel(self) -> None:
        self.release()

    def release(self) -> None:
        if self._session is not None:
            self._session.release()
            self._session = None

    def load_upload(self, path: str | Path) -> CapturedImage:
        """Read an image file into a data URI. Non-image files are rejected unread."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        if not mime_type or not mime_type.startswith("image/"):
            raise InvalidFileType(f"Not an image file: {path.name}")

        try:
            data = path.read_bytes()
        except OSError as e:
            raise UnreadableFile(f"Could not read {path.name}: {e}") from e

        try:
            with Image.open(io.BytesIO(data)) as im:
                width, height = im.size
                im.verify()
        except (OSError, SyntaxError, ValueError) as e:
            raise UnreadableFile(f"Could not decode {path.name} as an image: {e}") from e

        data_uri = f"data:{mime_type};base64," + base64.b64encode(data).decode("ascii")
        return CapturedImage(
            data_uri=data_uri, mime_type=mime_type, source="upload", width=width, height=height
        )
