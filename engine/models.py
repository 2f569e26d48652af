"""
engine/models.py

Estruturas imutáveis que atravessam o motor:
- `OutputFormat`: formatos de saída (valor = mime, como no <select> da UI).
- `DecodedImage`, `PixelSize`: entrada da busca.
- `EncodedArtifact`: bytes produzidos pelo codec.
- `SearchResult`: resultado final de uma conversão.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from PIL import Image

from .engine_config import FORMATS
from .errors import InvalidInputError


class OutputFormat(str, Enum):
    JPEG = "image/jpeg"   # Lossy-A
    WEBP = "image/webp"   # Lossy-B
    PNG = "image/png"     # Lossless

    @property
    def supports_quality(self) -> bool:
        return FORMATS[self.value]["quality"]

    @property
    def supports_alpha(self) -> bool:
        return FORMATS[self.value]["alpha"]

    @property
    def pil_format(self) -> str:
        return FORMATS[self.value]["pil"]

    @property
    def extension(self) -> str:
        return FORMATS[self.value]["ext"]


@dataclass(frozen=True)
class PixelSize:
    width: int
    height: int

    def as_tuple(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class DecodedImage:
    """Imagem já decodificada (somente leitura para o motor)."""
    pixels: Image.Image
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"dimensões inválidas: {self.width}x{self.height}")

    @classmethod
    def from_pil(cls, img: Image.Image) -> "DecodedImage":
        w, h = img.size
        return cls(pixels=img, width=int(w), height=int(h))

    @property
    def size(self) -> PixelSize:
        return PixelSize(self.width, self.height)

    @property
    def has_alpha(self) -> bool:
        im = self.pixels
        return im.mode in ("RGBA", "LA", "PA") or (im.mode == "P" and "transparency" in im.info)


@dataclass(frozen=True)
class EncodedArtifact:
    data: bytes
    format: OutputFormat

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class Stage(str, Enum):
    """Estados do controlador (na ordem em que podem ser visitados)."""
    IDLE = "idle"
    BOUNDS_CHECK = "bounds_check"
    DIRECT_ENCODE = "direct_encode"
    RANGE_PROBE = "range_probe"
    DIMENSION_STEP_DOWN = "dimension_step_down"
    QUALITY_BINARY_SEARCH = "quality_binary_search"
    CEILING_CLAMP = "ceiling_clamp"
    DONE = "done"


class Outcome(str, Enum):
    DIRECT = "direct"                          # sem alvo ou formato lossless
    WITHIN_RANGE = "within_range"              # busca de qualidade no tamanho nativo
    ABOVE_CEILING = "above_ceiling"            # alvo > máximo possível: usa q_max
    STEPPED_DOWN = "stepped_down"              # precisou reduzir dimensões
    STEP_DOWN_EXHAUSTED = "step_down_exhausted"
    CANCELLED = "cancelled"                    # timeout/cancelamento: melhor até agora


@dataclass(frozen=True)
class SizeLimits:
    """Faixa alcançável no tamanho nativo (sondas em q_min e q_max)."""
    min_kb: float
    max_kb: float


@dataclass(frozen=True)
class SearchResult:
    pixel_size: PixelSize
    quality: float
    artifact: EncodedArtifact
    estimated_kb: float
    outcome: Outcome
    target_reached: bool = True
    converged: bool = True
    step_downs: int = 0
    iterations: int = 0
    stages: Tuple[Stage, ...] = field(default_factory=tuple)
    notice: str = ""
