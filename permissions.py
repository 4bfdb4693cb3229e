import logging
import platform
from enum import Enum
from typing import Protocol

from config import CONSENT_PROMPT_PLATFORMS
from errors import CameraPermissionError, InvalidTransition, PermissionFailure
from models import MINIMAL_CONSTRAINTS, PREFERRED_CONSTRAINTS, Capabilities

logger = logging.getLogger(__name__)


class PermissionState(Enum):
    IDLE = "idle"
    CONSENT_EXPLANATION = "consent_explanation"
    REQUESTING_CONSENT = "requesting_consent"
    GRANTED = "granted"
    FALLBACK_OFFERED = "fallback_offered"


class CapabilityProvider(Protocol):
    def capabilities(self) -> Capabilities: ...


class StaticCapabilityProvider:
    def __init__(self, platform: str = "other", browser: str = "other", standalone: bool = False):
        self._capabilities = Capabilities(platform=platform, browser=browser, standalone=standalone)

    def capabilities(self) -> Capabilities:
        return self._capabilities


class SystemCapabilityProvider:
    """Describe the host this process runs on."""

    _SYSTEMS = {"darwin": "macos", "windows": "windows", "linux": "linux"}

    def capabilities(self) -> Capabilities:
        system = platform.system().lower()
        return Capabilities(platform=self._SYSTEMS.get(system, "other"), browser="native", standalone=True)


# (platform, browser) -> steps; None matches any value
REMEDIATION_STEPS = {
    ("ios", None): (
        "iPhone/iPad (Safari):\n"
        "1. Open iOS Settings\n"
        '2. Scroll down to "Safari"\n'
        '3. Tap "Camera"\n'
        '4. Select "Allow"\n'
        "5. Return to the app and reload the page"
    ),
    (None, "chrome"): (
        "Google Chrome:\n"
        "1. Click the lock/info icon in the address bar\n"
        '2. Find "Camera"\n'
        '3. Change it to "Allow"\n'
        "4. Reload the page"
    ),
    ("macos", "safari"): (
        "Safari (Mac):\n"
        "1. Go to Safari > Settings\n"
        '2. Click "Websites"\n'
        '3. Select "Camera"\n'
        '4. Find this site and change it to "Allow"\n'
        "5. Reload the page"
    ),
    ("macos", "native"): (
        "macOS:\n"
        "1. Open System Settings > Privacy & Security > Camera\n"
        "2. Enable camera access for your terminal or Python\n"
        "3. Restart the terminal and try again"
    ),
    ("windows", "native"): (
        "Windows:\n"
        "1. Open Settings > Privacy & security > Camera\n"
        '2. Turn on "Camera access" and "Let desktop apps access your camera"\n'
        "3. Close other apps using the camera and try again"
    ),
    ("linux", "native"): (
        "Linux:\n"
        "1. Check that a /dev/video* device exists\n"
        '2. Make sure your user is in the "video" group\n'
        "3. Close other apps using the camera and try again"
    ),
}

DEFAULT_REMEDIATION = (
    "Browser:\n"
    "1. Click the settings/permissions icon in the address bar\n"
    '2. Find "Camera" or "Permissions"\n'
    '3. Change it to "Allow"\n'
    "4. Reload the page"
)


def remediation_instructions(capabilities: Capabilities, table: dict = REMEDIATION_STEPS) -> str:
    """Human-readable steps to re-enable the camera on this platform/browser."""
    for key in (
        (capabilities.platform, capabilities.browser),
        (capabilities.platform, None),
        (None, capabilities.browser),
    ):
        if key in table:
            return table[key]
    return DEFAULT_REMEDIATION


_FAILURE_NAMES = {
    "NotAllowedError": PermissionFailure.DENIED,
    "PermissionDeniedError": PermissionFailure.DENIED,
    "NotFoundError": PermissionFailure.NO_DEVICE,
    "DevicesNotFoundError": PermissionFailure.NO_DEVICE,
    "NotReadableError": PermissionFailure.DEVICE_BUSY,
    "TrackStartError": PermissionFailure.DEVICE_BUSY,
    "OverconstrainedError": PermissionFailure.CONSTRAINTS_UNSATISFIABLE,
}

FAILURE_MESSAGES = {
    PermissionFailure.DENIED: "Camera permission denied. Upload an image instead, or see how to enable the camera.",
    PermissionFailure.NO_DEVICE: "No camera found. Upload an image instead.",
    PermissionFailure.DEVICE_BUSY: "The camera is being used by another application. Close it or upload an image.",
    PermissionFailure.CONSTRAINTS_UNSATISFIABLE: "Could not access the camera. Upload an image instead.",
    PermissionFailure.OTHER: "Error accessing the camera. Upload an image or check the permissions.",
}


def classify_failure(error: Exception) -> PermissionFailure:
    name = getattr(error, "name", type(error).__name__)
    return _FAILURE_NAMES.get(name, PermissionFailure.OTHER)


class PermissionStateMachine:
    """Drive camera acquisition through consent, request and fallback.

    Platform knowledge stays in the injected capability provider and the
    remediation table; the machine only asks whether a pre-prompt is needed.
    """

    def __init__(self, devices, provider: CapabilityProvider, consent_platforms=CONSENT_PROMPT_PLATFORMS,
                 controller=None):
        self.devices = devices
        self.controller = controller
        self.provider = provider
        self.consent_platforms = frozenset(consent_platforms)
        self.state = PermissionState.IDLE
        self.error: CameraPermissionError | None = None
        self.stream = None
        self.upload_chosen = False
        self.requests_issued = 0

    @property
    def requires_consent_prompt(self) -> bool:
        return self.provider.capabilities().platform in self.consent_platforms

    def start(self) -> PermissionState:
        if self.state not in (PermissionState.IDLE, PermissionState.FALLBACK_OFFERED):
            raise InvalidTransition(f"Cannot start camera access while {self.state.value}")
        self._ensure_camera_free()
        self.upload_chosen = False
        if self.requires_consent_prompt:
            self.state = PermissionState.CONSENT_EXPLANATION
            return self.state
        return self._request()

    def confirm_consent(self) -> PermissionState:
        if self.state is not PermissionState.CONSENT_EXPLANATION:
            raise InvalidTransition("No consent explanation is pending")
        return self._request()

    def dismiss_consent(self) -> PermissionState:
        if self.state is not PermissionState.CONSENT_EXPLANATION:
            raise InvalidTransition("No consent explanation is pending")
        self.state = PermissionState.IDLE
        return self.state

    def retry(self) -> PermissionState:
        if self.state is not PermissionState.FALLBACK_OFFERED:
            raise InvalidTransition("Retry is only offered after a failed request")
        return self._request()

    def choose_upload(self) -> PermissionState:
        if self.state is not PermissionState.FALLBACK_OFFERED:
            raise InvalidTransition("Upload fallback is only offered after a failed request")
        self.upload_chosen = True
        self.state = PermissionState.IDLE
        return self.state

    def take_stream(self):
        """Hand the granted stream to its owner; the machine keeps no reference."""
        if self.state is not PermissionState.GRANTED or self.stream is None:
            raise InvalidTransition("No granted stream to hand over")
        stream, self.stream = self.stream, None
        self.state = PermissionState.IDLE
        return stream

    def release(self) -> None:
        """Stop a granted stream that was never handed over."""
        if self.stream is not None:
            stream, self.stream = self.stream, None
            stream.stop()
        if self.state is PermissionState.GRANTED:
            self.state = PermissionState.IDLE

    def instructions(self) -> str:
        return remediation_instructions(self.provider.capabilities())

    def _already_denied(self) -> bool:
        try:
            status = self.devices.query_permission()
        except Exception as e:
            logger.info("Permission status unavailable, requesting directly: %s", e)
            return False
        return status == "denied"

    def _acquire(self, constraints):
        self.requests_issued += 1
        return self.devices.get_user_media(constraints)

    def _ensure_camera_free(self) -> None:
        if self.controller is not None and self.controller.active:
            raise InvalidTransition("A camera session is still live; release it before requesting another")

    def _request(self) -> PermissionState:
        self._ensure_camera_free()
        self.state = PermissionState.REQUESTING_CONSENT
        self.error = None

        if self._already_denied():
            return self._deny(PermissionFailure.DENIED)

        try:
            self.stream = self._acquire(PREFERRED_CONSTRAINTS)
        except Exception as e:
            failure = classify_failure(e)
            logger.warning("Camera request failed (%s): %s", failure.value, e)
            if failure is not PermissionFailure.CONSTRAINTS_UNSATISFIABLE:
                return self._deny(failure)
            try:
                self.stream = self._acquire(MINIMAL_CONSTRAINTS)
            except Exception as retry_error:
                logger.warning("Relaxed camera request failed: %s", retry_error)
                return self._deny(PermissionFailure.CONSTRAINTS_UNSATISFIABLE)

        self.state = PermissionState.GRANTED
        return self.state

    def _deny(self, failure: PermissionFailure) -> PermissionState:
        self.stream = None
        self.error = CameraPermissionError(failure, FAILURE_MESSAGES[failure])
        # Denial is reported through self.error; the caller is offered retry or upload.
        logger.info("Camera access denied (%s); offering fallback", failure.value)
        self.state = PermissionState.FALLBACK_OFFERED
        return self.state
