import json
import logging

from errors import ResponseError, ResponseFailure
from models import AnalysisResult, Direction, ElliottWave, FibonacciLevels, VisualIndicator

logger = logging.getLogger(__name__)


def _scan_from(text: str, start: int) -> int | None:
    """Return the index of the brace closing the one at ``start``, or None."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def find_json_region(text: str) -> str | None:
    """Locate the first balanced ``{...}`` region in free text.

    Braces inside double-quoted strings (including escaped quotes) do not
    count towards nesting. If an opening brace never balances, scanning
    resumes at the next opening brace.
    """
    start = text.find("{")
    while start != -1:
        end = _scan_from(text, start)
        if end is not None:
            return text[start:end + 1]
        start = text.find("{", start + 1)
    return None


def _require_text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ResponseError(ResponseFailure.SCHEMA, f"Field '{key}' is missing or empty")
    return value.strip()


def _require_enum(data: dict, key: str, enum_cls):
    value = data.get(key)
    try:
        return enum_cls(value)
    except ValueError:
        raise ResponseError(
            ResponseFailure.SCHEMA, f"Field '{key}' has unexpected value {value!r}"
        ) from None


def _optional_block(data: dict, key: str, block_cls):
    """Build a sub-object only when it matches its field set exactly."""
    raw = data.get(key)
    if raw is None:
        return None
    wire_keys = set(block_cls.FIELDS.values())
    if not isinstance(raw, dict) or set(raw) != wire_keys:
        logger.debug("Dropping '%s' block with unexpected shape: %r", key, raw)
        return None
    if not all(isinstance(v, str) for v in raw.values()):
        logger.debug("Dropping '%s' block with non-text values", key)
        return None
    return block_cls(**{attr: raw[wire] for attr, wire in block_cls.FIELDS.items()})


def validate_analysis(data) -> AnalysisResult:
    if not isinstance(data, dict):
        raise ResponseError(ResponseFailure.SCHEMA, "Analysis response is not a JSON object")
    return AnalysisResult(
        direction=_require_enum(data, "direcao", Direction),
        probability=_require_text(data, "probabilidade"),
        visual_indicator=_require_enum(data, "indicador_visual", VisualIndicator),
        summary=_require_text(data, "analise_resumida"),
        fibonacci=_optional_block(data, "fibonacci", FibonacciLevels),
        elliott=_optional_block(data, "elliott", ElliottWave),
    )


def parse_analysis(text: str | None) -> AnalysisResult:
    """Extract and strictly validate the verdict contained in service output."""
    if not text or not text.strip():
        raise ResponseError(ResponseFailure.EMPTY, "Empty response from analysis service")

    region = find_json_region(text)
    if region is None:
        raise ResponseError(ResponseFailure.NO_JSON, "No JSON object found in analysis response")

    try:
        data = json.loads(region)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        raise ResponseError(ResponseFailure.MALFORMED, f"Malformed JSON in analysis response: {e}") from e

    return validate_analysis(data)
