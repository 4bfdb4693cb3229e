from dataclasses import dataclass
from enum import Enum

from config import PREFERRED_HEIGHT, PREFERRED_WIDTH


class Direction(str, Enum):
    BUY = "COMPRA"
    SELL = "VENDA"
    UNDEFINED = "INDEFINIDO"


class VisualIndicator(str, Enum):
    UP_ARROW = "SETA_VERDE_CIMA"
    DOWN_ARROW = "SETA_VERMELHA_BAIXO"
    NEUTRAL = "NEUTRO"


class SessionState(Enum):
    IDLE = "idle"
    PERMISSION_PENDING = "permission_pending"
    CAMERA_ACTIVE = "camera_active"
    IMAGE_CAPTURED = "image_captured"
    ANALYZING = "analyzing"
    RESULT = "result"
    ERROR = "error"


@dataclass(frozen=True)
class FibonacciLevels:
    current_level: str
    key_support: str
    key_resistance: str
    projection: str

    # attribute name -> wire key
    FIELDS = {
        "current_level": "nivel_atual",
        "key_support": "suporte_chave",
        "key_resistance": "resistencia_chave",
        "projection": "projecao",
    }


@dataclass(frozen=True)
class ElliottWave:
    current_pattern: str
    current_wave: str
    phase: str
    next_move: str

    FIELDS = {
        "current_pattern": "padrao_atual",
        "current_wave": "onda_atual",
        "phase": "fase",
        "next_move": "proximo_movimento",
    }


@dataclass(frozen=True)
class AnalysisResult:
    """Validated verdict returned by the analysis service.

    ``visual_indicator`` is reported by the service on its own and is never
    derived from ``direction``; the two may disagree.
    """

    direction: Direction
    probability: str
    visual_indicator: VisualIndicator
    summary: str
    fibonacci: FibonacciLevels | None = None
    elliott: ElliottWave | None = None

    def to_dict(self) -> dict:
        """Return the wire representation (the service's own keys)."""
        data = {
            "direcao": self.direction.value,
            "probabilidade": self.probability,
            "indicador_visual": self.visual_indicator.value,
            "analise_resumida": self.summary,
        }
        if self.fibonacci is not None:
            data["fibonacci"] = {
                wire: getattr(self.fibonacci, attr) for attr, wire in FibonacciLevels.FIELDS.items()
            }
        if self.elliott is not None:
            data["elliott"] = {
                wire: getattr(self.elliott, attr) for attr, wire in ElliottWave.FIELDS.items()
            }
        return data


@dataclass(frozen=True)
class CapturedImage:
    data_uri: str
    mime_type: str
    source: str  # "camera" | "upload"
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class MediaConstraints:
    """Camera request hints. Width/height are ideals, not hard requirements."""

    facing_mode: str | None = None  # "environment" | "user"
    width: int | None = None
    height: int | None = None

    @property
    def is_minimal(self) -> bool:
        return self.facing_mode is None and self.width is None and self.height is None


PREFERRED_CONSTRAINTS = MediaConstraints(
    facing_mode="environment", width=PREFERRED_WIDTH, height=PREFERRED_HEIGHT
)
MINIMAL_CONSTRAINTS = MediaConstraints()


@dataclass(frozen=True)
class Capabilities:
    platform: str  # ios | android | macos | windows | linux | other
    browser: str  # safari | chrome | firefox | native | other
    standalone: bool = False
