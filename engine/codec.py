"""
codec.py

Codificador "caixa-preta" usado pela busca (Pillow por baixo):
- Reamostragem Lanczos para o tamanho pedido
- Composição sobre fundo branco para formatos sem alfa (JPEG)
- Qualidade 0..1 convertida para a escala 1..100 do Pillow

Cada chamada é independente e devolve bytes novos.
"""

from __future__ import annotations

import io
import logging
from typing import Protocol

from PIL import Image

from .errors import EncodeError
from .models import DecodedImage, EncodedArtifact, OutputFormat, PixelSize

log = logging.getLogger(__name__)

RESAMPLE_LANCZOS = Image.Resampling.LANCZOS
BACKGROUND = (255, 255, 255)


class Encoder(Protocol):
    def __call__(
        self, image: DecodedImage, size: PixelSize, fmt: OutputFormat, quality: float
    ) -> EncodedArtifact: ...


def _pil_quality(quality: float) -> int:
    return max(1, min(100, int(round(quality * 100))))


def _flatten(img: Image.Image) -> Image.Image:
    """Compõe pixels (semi)transparentes sobre branco; devolve RGB."""
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGB", rgba.size, BACKGROUND)
        bg.paste(rgba, mask=rgba.getchannel("A"))
        return bg
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _prepare(img: Image.Image, fmt: OutputFormat) -> Image.Image:
    if not fmt.supports_alpha:
        return _flatten(img)
    # formatos com alfa: normaliza para RGB/RGBA (P, CMYK, I;16...)
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def encode(image: DecodedImage, size: PixelSize, fmt: OutputFormat, quality: float) -> EncodedArtifact:
    """Renderiza `image` em `size` e codifica em `fmt` com `quality` (0..1).

    Para PNG a qualidade é aceita mas não muda o tamanho.

    Raises:
        EncodeError: tamanho não positivo, formato desconhecido ou falha do Pillow.
    """
    if size.width <= 0 or size.height <= 0:
        raise EncodeError(f"tamanho inválido para codificar: {size}")
    try:
        fmt = OutputFormat(fmt)
    except ValueError as e:
        raise EncodeError(f"formato não reconhecido: {fmt!r}") from e

    try:
        img = _prepare(image.pixels, fmt)
        img = img.resize(size.as_tuple(), RESAMPLE_LANCZOS)

        buf = io.BytesIO()
        if fmt is OutputFormat.JPEG:
            img.save(buf, "JPEG", quality=_pil_quality(quality), optimize=True)
        elif fmt is OutputFormat.WEBP:
            img.save(buf, "WEBP", quality=_pil_quality(quality), method=4)
        else:
            img.save(buf, "PNG", optimize=True)
    except (OSError, ValueError) as e:
        raise EncodeError(f"falha ao codificar {fmt.pil_format} {size} q={quality:.3f}: {e}") from e

    data = buf.getvalue()
    log.debug("encode %s %s q=%.3f -> %d bytes", fmt.pil_format, size, quality, len(data))
    return EncodedArtifact(data=data, format=fmt)
