import logging

import requests

from config import ANALYSIS_ENDPOINT_URL, ANALYSIS_TIMEOUT
from errors import ServiceError

logger = logging.getLogger(__name__)


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return body["error"]
    return f"Analysis service returned HTTP {resp.status_code}"


class HttpAnalysisService:
    """Analysis service reached through its HTTP endpoint.

    Posts ``{"imagem": <data URI>}`` and returns the raw body text on success.
    Failures come back as ``{"error": "..."}`` with a non-2xx status.
    """

    def __init__(self, endpoint: str = ANALYSIS_ENDPOINT_URL, timeout: float = ANALYSIS_TIMEOUT,
                 session: requests.Session | None = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def analyze(self, data_uri: str) -> str:
        if not self.endpoint:
            raise ServiceError("ANALYSIS_ENDPOINT_URL is not configured")

        try:
            resp = self.session.post(self.endpoint, json={"imagem": data_uri}, timeout=self.timeout)
        except requests.Timeout as e:
            raise ServiceError(f"Analysis service timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise ServiceError(f"Could not reach analysis service: {e}") from e

        if not resp.ok:
            message = _error_message(resp)
            logger.error("Analysis service error %s: %s", resp.status_code, message)
            raise ServiceError(message, status=resp.status_code)

        return resp.text
