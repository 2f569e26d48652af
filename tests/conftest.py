"""Fixtures compartilhadas: imagens sintéticas e um codificador determinístico."""

from __future__ import annotations

import random
import threading
from typing import List, Tuple

import pytest
from PIL import Image

from engine.engine_config import SearchConfig
from engine.models import DecodedImage, EncodedArtifact, OutputFormat, PixelSize


class LinearEncoder:
    """Codificador falso: KB linear na qualidade e proporcional à área.

    No tamanho nativo produz `kb_min` em `q_min` e `kb_max` em 1.0.
    """

    def __init__(self, native: PixelSize, kb_min: float = 10.0, kb_max: float = 300.0, q_min: float = 0.05):
        self.native = native
        self.slope = (kb_max - kb_min) / (1.0 - q_min)
        self.offset = kb_min - self.slope * q_min
        self.calls: List[Tuple[PixelSize, float]] = []
        self._lock = threading.Lock()

    def kb_at(self, size: PixelSize, quality: float) -> float:
        area = (size.width * size.height) / (self.native.width * self.native.height)
        return area * (self.offset + self.slope * quality)

    def __call__(self, image: DecodedImage, size: PixelSize, fmt: OutputFormat, quality: float) -> EncodedArtifact:
        with self._lock:
            self.calls.append((size, quality))
        n = int(round(self.kb_at(size, quality) * 1024))
        return EncodedArtifact(data=b"\x00" * n, format=OutputFormat(fmt))

    @property
    def qualities(self) -> List[float]:
        return [q for _, q in self.calls]


def noise_image(w: int, h: int, seed: int = 0, mode: str = "RGB") -> Image.Image:
    rng = random.Random(seed)
    img = Image.frombytes("RGB", (w, h), rng.randbytes(w * h * 3))
    return img.convert(mode) if mode != "RGB" else img


@pytest.fixture
def config() -> SearchConfig:
    # sondas em série deixam a ordem das chamadas previsível
    return SearchConfig(parallel_probes=False)


@pytest.fixture
def big_image() -> DecodedImage:
    """1000x800 sem pixels reais: só o codificador falso o consome."""
    return DecodedImage(pixels=Image.new("RGB", (1, 1)), width=1000, height=800)


@pytest.fixture
def linear_encoder(big_image: DecodedImage) -> LinearEncoder:
    return LinearEncoder(big_image.size)


@pytest.fixture
def photo() -> DecodedImage:
    return DecodedImage.from_pil(noise_image(160, 120))


@pytest.fixture
def transparent() -> DecodedImage:
    return DecodedImage.from_pil(Image.new("RGBA", (32, 24), (200, 0, 0, 0)))
