#!/usr/bin/env python3
"""Chart Lens - Photograph or upload a trading chart and get a directional read from a vision model."""

import argparse
import json
import logging
import sys
import textwrap

import cv2

from analysis_client import HttpAnalysisService
from capture import CaptureController, OpenCVMediaDevices
from config import ANALYSIS_ENDPOINT_URL
from errors import CaptureError, InputError
from gemini_analyzer import GeminiAnalysisService
from models import AnalysisResult, CapturedImage, Direction, VisualIndicator
from orchestrator import AnalysisOrchestrator
from permissions import (
    PermissionState, PermissionStateMachine, StaticCapabilityProvider, SystemCapabilityProvider,
)
from session import Session

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
CYAN = "\033[36m"
WHITE = "\033[97m"

BOX_WIDTH = 72
PREVIEW_WINDOW = "Chart Lens - SPACE to capture, ESC to cancel"
KEY_SPACE = 32
KEY_ESC = 27

CONSENT_TEXT = (
    "Camera access needed.\n"
    "Chart Lens uses your camera to photograph the chart you want analyzed.\n"
    "Your system will now ask for permission; choose Allow."
)

# Arrow and color come from the indicator the service reported, never from direction.
_INDICATOR_STYLES = {
    VisualIndicator.UP_ARROW: ("▲", GREEN),
    VisualIndicator.DOWN_ARROW: ("▼", RED),
    VisualIndicator.NEUTRAL: ("■", YELLOW),
}

_DIRECTION_LABELS = {
    Direction.BUY: "BUY",
    Direction.SELL: "SELL",
    Direction.UNDEFINED: "UNDEFINED",
}


def indicator_style(indicator: VisualIndicator) -> tuple[str, str]:
    return _INDICATOR_STYLES[indicator]


# ─── CLI Display Helpers ───────────────────────────────────────────────

def _box_top():
    return f"  {DIM}┌{'─' * BOX_WIDTH}┐{RESET}"


def _box_bottom():
    return f"  {DIM}└{'─' * BOX_WIDTH}┘{RESET}"


def _box_sep():
    return f"  {DIM}├{'─' * BOX_WIDTH}┤{RESET}"


def _box_line(content: str):
    return f"  {DIM}│{RESET} {content}"


def _wrap_box_lines(text: str, prefix: str = "") -> list[str]:
    """Wrap long text to fit within the box."""
    width = max(BOX_WIDTH - 2 - len(prefix), 20)
    lines = []
    for i, line in enumerate(textwrap.wrap(text, width=width) or [""]):
        lead = prefix if i == 0 else " " * len(prefix)
        lines.append(_box_line(f"{lead}{line}"))
    return lines


def format_result(r: AnalysisResult) -> str:
    """Render a result in a box-drawing layout."""
    arrow, color = indicator_style(r.visual_indicator)
    lines = [_box_top()]
    lines.append(_box_line(
        f"{color}{BOLD}{arrow} {_DIRECTION_LABELS[r.direction]}{RESET}   "
        f"{DIM}probability{RESET} {BOLD}{r.probability}{RESET}"
    ))
    lines.append(_box_sep())
    lines.extend(_wrap_box_lines(r.summary))

    if r.fibonacci:
        lines.append(_box_sep())
        lines.append(_box_line(f"{CYAN}{BOLD}Fibonacci{RESET}"))
        lines.extend(_wrap_box_lines(r.fibonacci.current_level, "Current level: "))
        lines.extend(_wrap_box_lines(r.fibonacci.key_support, "Key support:   "))
        lines.extend(_wrap_box_lines(r.fibonacci.key_resistance, "Resistance:    "))
        lines.extend(_wrap_box_lines(r.fibonacci.projection, "Projection:    "))

    if r.elliott:
        lines.append(_box_sep())
        lines.append(_box_line(f"{CYAN}{BOLD}Elliott Waves{RESET}"))
        lines.extend(_wrap_box_lines(r.elliott.current_pattern, "Pattern:   "))
        lines.extend(_wrap_box_lines(r.elliott.current_wave, "Wave:      "))
        lines.extend(_wrap_box_lines(r.elliott.phase, "Phase:     "))
        lines.extend(_wrap_box_lines(r.elliott.next_move, "Next move: "))

    lines.append(_box_bottom())
    return "\n".join(lines)


def _ask(prompt: str) -> str:
    try:
        return input(prompt).strip().lower()
    except EOFError:
        return ""


# ─── Capture flows ─────────────────────────────────────────────────────

def upload_image(controller: CaptureController, session: Session, path: str) -> CapturedImage | None:
    try:
        return controller.load_upload(path)
    except InputError as e:
        session.local_error(str(e))
        print(f"{RED}{e}{RESET}")
        return None


def preview_and_capture(controller: CaptureController, session: Session) -> CapturedImage | None:
    """Show the live preview until the user captures or cancels."""
    image = None
    try:
        for frame in controller.preview():
            cv2.imshow(PREVIEW_WINDOW, frame)
            key = cv2.waitKey(1) & 0xFF
            if key == KEY_SPACE:
                image = controller.capture()
                break
            if key == KEY_ESC:
                break
    except CaptureError as e:
        session.camera_cancelled()
        session.local_error(str(e))
        print(f"{RED}{e}{RESET}")
        return None
    finally:
        controller.release()
        cv2.destroyAllWindows()

    if image is None:
        session.camera_cancelled()
        print(f"{DIM}Camera closed.{RESET}")
    return image


def camera_flow(machine: PermissionStateMachine, controller: CaptureController,
                session: Session) -> CapturedImage | None:
    session.begin_permission()
    state = machine.start()

    if state is PermissionState.CONSENT_EXPLANATION:
        print(f"\n{BOLD}{CONSENT_TEXT}{RESET}\n")
        if _ask("Allow camera access? [y/N] ") == "y":
            state = machine.confirm_consent()
        else:
            machine.dismiss_consent()
            session.permission_failed("Camera access cancelled.", fallback=False)
            return None

    while state is PermissionState.FALLBACK_OFFERED:
        session.permission_failed(str(machine.error))
        print(f"\n{RED}{machine.error}{RESET}")
        choice = _ask("[r]etry camera, [u]pload an image, [i]nstructions, [q]uit: ")
        if choice == "r":
            session.begin_permission()
            state = machine.retry()
        elif choice == "u":
            machine.choose_upload()
            path = input("Image path: ").strip()
            return upload_image(controller, session, path)
        elif choice == "i":
            print(f"\n{machine.instructions()}")
        else:
            return None

    controller.activate(machine.take_stream())
    session.camera_started()
    return preview_and_capture(controller, session)


def build_service(backend: str, endpoint: str | None):
    if backend == "http":
        return HttpAnalysisService(endpoint=endpoint or ANALYSIS_ENDPOINT_URL)
    return GeminiAnalysisService()


def build_provider(platform: str | None, browser: str | None):
    if platform or browser:
        return StaticCapabilityProvider(platform=platform or "other", browser=browser or "other")
    return SystemCapabilityProvider()


def main():
    parser = argparse.ArgumentParser(description="Analyze a trading chart photo with a vision model")
    parser.add_argument("--upload", metavar="PATH", help="Analyze an image file instead of using the camera")
    parser.add_argument("--backend", choices=("gemini", "http"),
                        default="http" if ANALYSIS_ENDPOINT_URL else "gemini",
                        help="Where to send the image (default: http when ANALYSIS_ENDPOINT_URL is set)")
    parser.add_argument("--endpoint", help="Analysis endpoint URL for the http backend")
    parser.add_argument("--platform", help="Override detected platform (ios, android, macos, windows, linux)")
    parser.add_argument("--browser", help="Override detected browser tag (safari, chrome, firefox, native)")
    parser.add_argument("--json", action="store_true", help="Print the raw result JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    session = Session()
    controller = CaptureController()
    orchestrator = AnalysisOrchestrator(build_service(args.backend, args.endpoint), session)

    if args.upload:
        image = upload_image(controller, session, args.upload)
    else:
        machine = PermissionStateMachine(
            OpenCVMediaDevices(), build_provider(args.platform, args.browser), controller=controller,
        )
        image = camera_flow(machine, controller, session)

    if image is None:
        sys.exit(1)

    print(f"{DIM}Analyzing chart...{RESET}")
    outcome = orchestrator.run(image)
    if not outcome.ok:
        print(f"{RED}{BOLD}Analysis failed:{RESET} {outcome.error}")
        sys.exit(1)

    if args.json:
        print(json.dumps(outcome.result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(format_result(outcome.result))


if __name__ == "__main__":
    main()
