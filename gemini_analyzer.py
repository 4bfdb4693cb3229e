import base64
import binascii
import io
import logging

from google import genai
from google.genai import types
from PIL import Image

from config import ANALYSIS_TIMEOUT, GEMINI_API_KEY, GEMINI_MODEL, MAX_OUTPUT_TOKENS, TEMPERATURE
from errors import ResponseError, ResponseFailure, ServiceError

logger = logging.getLogger(__name__)

DISCLAIMER = "Probabilistic chart-based analysis. Not financial advice."

PROMPT_TEMPLATE = """Role: You are an AI specialized in VISUAL TECHNICAL ANALYSIS of financial markets, with expertise in Fibonacci and Elliott Waves.

Your job is to analyze IMAGES of trading charts captured with a phone or webcam camera.

You do NOT execute trades.
You do NOT give financial recommendations.
You provide ONLY probabilistic analyses based on visual patterns.

Always answer clearly, briefly and objectively.

Steps:

1. Identify visually:
- Main trend (up, down or sideways)
- Supports and resistances
- Relevant chart patterns
- Strength or weakness of the current move

2. FIBONACCI ANALYSIS:
- Identify visible retracement levels (23.6%, 38.2%, 50%, 61.8%, 78.6%)
- Determine whether price is respecting a Fibonacci level
- Identify possible reversal zones
- Compute extension levels if applicable (127.2%, 161.8%, 261.8%)

3. ELLIOTT WAVE ANALYSIS:
- Identify the current wave pattern (impulse or correction)
- Determine which wave the market is in (1, 2, 3, 4, 5 or A, B, C)
- Assess whether the pattern is complete or forming
- Identify possible wave targets

4. Based ONLY on the visual analysis, estimate:
- BUY probability (%)
- SELL probability (%)

5. Choose only ONE dominant direction:
- COMPRA if the probability is higher for up
- VENDA if the probability is higher for down
- INDEFINIDO if neither exceeds 60%

Focus exclusively on SHORT-TERM trades (M1 and M5). Prioritize immediate trend continuation, clear rejection at support/resistance (including Fibonacci levels), strength of the last candles and confirmed Elliott patterns. Avoid late signals. If the chart is congested or without clear strength, return INDEFINIDO.

Scoring:
- Clear trend: +30
- Confirmed chart pattern: +25
- Broke support/resistance: +25
- Strong visual volume: +20
- Respects Fibonacci levels: +15
- Clear Elliott pattern: +15
Score >= 70: show an arrow. Score < 70: undefined market (NEUTRO).

Respond in this exact JSON format:
{{
  "direcao": "COMPRA | VENDA | INDEFINIDO",
  "probabilidade": "XX%",
  "indicador_visual": "SETA_VERDE_CIMA | SETA_VERMELHA_BAIXO | NEUTRO",
  "analise_resumida": "Short text explaining the reason. Always end with: {disclaimer}",
  "fibonacci": {{
    "nivel_atual": "Fibonacci level closest to the current price",
    "suporte_chave": "Most relevant Fibonacci support",
    "resistencia_chave": "Most relevant Fibonacci resistance",
    "projecao": "Next target based on Fibonacci extension"
  }},
  "elliott": {{
    "padrao_atual": "Impulse or Correction",
    "onda_atual": "Number or letter of the current wave",
    "fase": "Description of the current phase",
    "proximo_movimento": "Expectation based on the Elliott pattern"
  }}
}}"""

USER_MESSAGE = (
    "Analyze this trading chart including Fibonacci and Elliott Wave analysis. "
    "Give your analysis in the specified JSON format."
)


def decode_data_uri(data_uri: str) -> Image.Image:
    """Turn a ``data:<mime>;base64,<payload>`` URI into a Pillow image."""
    header, sep, payload = data_uri.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ServiceError("Image payload is not a base64 data URI", status=400)
    try:
        raw = base64.b64decode(payload, validate=True)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (binascii.Error, OSError, ValueError) as e:
        raise ServiceError(f"Image payload could not be decoded: {e}", status=400) from e
    return image


def _build_client(api_key: str, timeout: float) -> genai.Client:
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout * 1000)),
    )


class GeminiAnalysisService:
    """Analysis service calling the Gemini vision model directly."""

    def __init__(self, api_key: str = GEMINI_API_KEY, model: str = GEMINI_MODEL,
                 timeout: float = ANALYSIS_TIMEOUT, client=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise ServiceError("GEMINI_API_KEY is not configured", status=500)
            self._client = _build_client(self.api_key, self.timeout)
        return self._client

    def analyze(self, data_uri: str) -> str:
        if not data_uri:
            raise ServiceError("No image provided", status=400)
        client = self._get_client()
        image = decode_data_uri(data_uri)

        try:
            response = client.models.generate_content(
                model=self.model,
                contents=[USER_MESSAGE, image],
                config=types.GenerateContentConfig(
                    system_instruction=PROMPT_TEMPLATE.format(disclaimer=DISCLAIMER),
                    temperature=TEMPERATURE,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                    thinking_config=types.ThinkingConfig(thinking_budget=0),
                ),
            )
        except Exception as e:
            logger.error("Gemini request failed: %s", e)
            raise ServiceError(f"Analysis request failed: {e}") from e

        text = response.text
        if not text:
            raise ResponseError(ResponseFailure.EMPTY, "Empty response from Gemini")
        logger.debug("Gemini returned %d characters", len(text))
        return text
