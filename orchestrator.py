import logging
import threading
from dataclasses import dataclass
from typing import Protocol

from errors import AnalysisInProgress, InvalidTransition, ResponseError, ServiceError
from models import AnalysisResult, CapturedImage
from response_parser import parse_analysis
from session import Session

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    def analyze(self, data_uri: str) -> str: ...


@dataclass(frozen=True)
class AnalysisOutcome:
    """Either a validated result or the error that replaced it, never both."""

    result: AnalysisResult | None = None
    error: ServiceError | ResponseError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class AnalysisOrchestrator:
    def __init__(self, service: AnalysisService, session: Session):
        self.service = service
        self.session = session
        self._in_flight = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def run(self, image: CapturedImage) -> AnalysisOutcome:
        """Accept a freshly captured image and analyze it."""
        if self.in_flight:
            raise AnalysisInProgress("An analysis is already running")
        self.session.image_captured(image)
        return self.submit()

    def submit(self) -> AnalysisOutcome:
        """Send the session's captured image to the service, one request at a time."""
        if not self._in_flight.acquire(blocking=False):
            raise AnalysisInProgress("An analysis is already running")
        try:
            image = self.session.image
            if image is None:
                raise InvalidTransition("No captured image to analyze")
            self.session.begin_analysis()
            return self._analyze(image)
        finally:
            self._in_flight.release()

    def _analyze(self, image: CapturedImage) -> AnalysisOutcome:
        logger.info("Submitting %s image for analysis", image.source)
        try:
            text = self.service.analyze(image.data_uri)
            result = parse_analysis(text)
        except (ServiceError, ResponseError) as e:
            logger.error("Analysis failed: %s", e)
            self.session.fail(e)
            return AnalysisOutcome(error=e)
        except Exception as e:
            # Unexpected transport-level failure from a service implementation
            logger.exception("Analysis service raised unexpectedly")
            error = ServiceError(f"Analysis request failed: {e}")
            self.session.fail(error)
            return AnalysisOutcome(error=error)

        self.session.complete(result)
        logger.info("Analysis complete: %s (%s)", result.direction.name, result.probability)
        return AnalysisOutcome(result=result)
