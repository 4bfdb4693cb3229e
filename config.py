import os

from dotenv import load_dotenv

load_dotenv()

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
ANALYSIS_ENDPOINT_URL = os.environ.get("ANALYSIS_ENDPOINT_URL", "")

# Seconds; applies to both the HTTP endpoint and the Gemini client
ANALYSIS_TIMEOUT = float(os.environ.get("ANALYSIS_TIMEOUT", "60"))
MAX_OUTPUT_TOKENS = 800
TEMPERATURE = 0.3

CAMERA_INDEX = int(os.environ.get("CAMERA_INDEX", "0"))
CAMERA_REAR_INDEX = int(os.environ.get("CAMERA_REAR_INDEX", str(CAMERA_INDEX)))
PREFERRED_WIDTH = 1920
PREFERRED_HEIGHT = 1080
JPEG_QUALITY = 0.8

CONSENT_PROMPT_PLATFORMS = frozenset(
    p.strip().lower()
    for p in os.environ.get("CONSENT_PROMPT_PLATFORMS", "ios,macos").split(",")
    if p.strip()
)
