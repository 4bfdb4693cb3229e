import json

import numpy as np
import pytest

from errors import MediaAccessError
from session import Session

VALID_RESPONSE = {
    "direcao": "COMPRA",
    "probabilidade": "72%",
    "indicador_visual": "SETA_VERDE_CIMA",
    "analise_resumida": "Strong uptrend holding the 61.8% retracement. "
                        "Probabilistic chart-based analysis. Not financial advice.",
    "fibonacci": {
        "nivel_atual": "61.8%",
        "suporte_chave": "50%",
        "resistencia_chave": "78.6%",
        "projecao": "161.8%",
    },
    "elliott": {
        "padrao_atual": "Impulse",
        "onda_atual": "3",
        "fase": "Wave 3 forming",
        "proximo_movimento": "Continuation up",
    },
}


class FakeStream:
    def __init__(self, counters: dict, width: int = 64, height: int = 48, frames: int | None = None):
        self.counters = counters
        self.width = width
        self.height = height
        self.frames_left = frames
        self.stopped = False

    def read(self):
        if self.stopped:
            return False, None
        if self.frames_left is not None:
            if self.frames_left == 0:
                return False, None
            self.frames_left -= 1
        return True, np.full((self.height, self.width, 3), 127, dtype=np.uint8)

    def frame_size(self):
        return self.width, self.height

    def stop(self):
        self.stopped = True
        self.counters["stopped"] += 1


class FakeDevices:
    """Media devices that fail with the queued error names, then succeed."""

    def __init__(self, failures=(), permission_status=None):
        self.failures = list(failures)
        self.permission_status = permission_status
        self.requests = []
        self.counters = {"acquired": 0, "stopped": 0}

    def get_user_media(self, constraints):
        self.requests.append(constraints)
        if self.failures:
            name = self.failures.pop(0)
            raise MediaAccessError(name, f"simulated {name}")
        self.counters["acquired"] += 1
        return FakeStream(self.counters)

    def query_permission(self):
        return self.permission_status


class FakeService:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def analyze(self, data_uri):
        self.calls.append(data_uri)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def valid_text():
    return "Here is the analysis:\n" + json.dumps(VALID_RESPONSE, ensure_ascii=False) + "\nGood luck."


@pytest.fixture
def png_file(tmp_path):
    from PIL import Image

    path = tmp_path / "chart.png"
    Image.new("RGB", (32, 16), color=(10, 200, 30)).save(path)
    return path
