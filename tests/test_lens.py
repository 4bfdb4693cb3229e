import pytest

from conftest import FakeDevices
from capture import CaptureController
from lens import GREEN, RED, YELLOW, camera_flow, format_result, indicator_style, upload_image
from models import AnalysisResult, Direction, SessionState, VisualIndicator
from permissions import PermissionStateMachine, StaticCapabilityProvider


def _result(direction, indicator):
    return AnalysisResult(
        direction=direction, probability="65%", visual_indicator=indicator, summary="Sideways drift."
    )


def test_indicator_style():
    assert indicator_style(VisualIndicator.UP_ARROW) == ("▲", GREEN)
    assert indicator_style(VisualIndicator.DOWN_ARROW) == ("▼", RED)
    assert indicator_style(VisualIndicator.NEUTRAL) == ("■", YELLOW)


def test_render_follows_indicator_not_direction():
    text = format_result(_result(Direction.BUY, VisualIndicator.DOWN_ARROW))
    assert "▼ BUY" in text
    assert "▲" not in text

    text = format_result(_result(Direction.UNDEFINED, VisualIndicator.UP_ARROW))
    assert "▲ UNDEFINED" in text


def test_render_optional_sections():
    text = format_result(_result(Direction.SELL, VisualIndicator.DOWN_ARROW))
    assert "Fibonacci" not in text
    assert "Elliott" not in text
    assert "Sideways drift." in text


def test_upload_non_image_stays_local(session, tmp_path):
    path = tmp_path / "trades.csv"
    path.write_text("a,b\n")
    assert upload_image(CaptureController(), session, str(path)) is None
    assert session.state is SessionState.IDLE
    assert "Not an image file" in session.notice


def test_camera_flow_upload_fallback(session, png_file, monkeypatch):
    answers = iter(["u", str(png_file)])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    devices = FakeDevices(failures=["NotAllowedError"])
    machine = PermissionStateMachine(devices, StaticCapabilityProvider("android", "chrome"), consent_platforms=())

    image = camera_flow(machine, CaptureController(), session)
    assert image is not None
    assert image.source == "upload"
    assert session.state is SessionState.IDLE
    assert devices.counters["acquired"] == 0


def test_camera_flow_declined_consent(session, monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt="": "n")
    devices = FakeDevices()
    machine = PermissionStateMachine(devices, StaticCapabilityProvider("ios", "safari"), consent_platforms={"ios"})

    assert camera_flow(machine, CaptureController(), session) is None
    assert devices.requests == []
    assert session.state is SessionState.IDLE


def _closing_preview(seen):
    def fake(controller, session):
        seen.append((session.state, controller.active))
        controller.cancel()
        session.camera_cancelled()
        return None
    return fake


def test_camera_flow_reaches_camera_after_relaxed_retry(session, monkeypatch):
    seen = []
    monkeypatch.setattr("lens.preview_and_capture", _closing_preview(seen))
    devices = FakeDevices(failures=["OverconstrainedError"])
    controller = CaptureController()
    machine = PermissionStateMachine(
        devices, StaticCapabilityProvider("android", "chrome"), consent_platforms=(), controller=controller,
    )

    assert camera_flow(machine, controller, session) is None
    assert seen == [(SessionState.CAMERA_ACTIVE, True)]
    assert len(devices.requests) == 2
    assert devices.counters == {"acquired": 1, "stopped": 1}
    assert session.state is SessionState.IDLE


def test_camera_flow_offers_fallback_when_relaxed_retry_fails(session, monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt="": "q")
    monkeypatch.setattr("lens.preview_and_capture", lambda controller, session: pytest.fail("camera opened"))
    devices = FakeDevices(failures=["OverconstrainedError", "OverconstrainedError"])
    machine = PermissionStateMachine(devices, StaticCapabilityProvider("android", "chrome"), consent_platforms=())

    assert camera_flow(machine, CaptureController(), session) is None
    assert session.fallback_offered
    assert session.state is SessionState.IDLE
    assert "Could not access the camera" in session.notice
    assert len(devices.requests) == 2
    assert devices.counters["acquired"] == 0
