"""
engine/thumbs.py

Representações base64 (data URL) para a UI.
- `image_thumb(img) -> (data_url, w, h)`: prévia JPEG dentro de 200x300.
- `to_data_url(artifact) -> str`: artefato como `data:<mime>;base64,...`.
"""

from __future__ import annotations
import base64, io
from typing import Tuple
from PIL import Image

from .models import EncodedArtifact

PREVIEW_BOX_W = 200
PREVIEW_BOX_H = 300
PREVIEW_JPEG_Q = 70


def _b64_jpeg(img: Image.Image, max_w: int, max_h: int, quality=70) -> str:
    im = img.copy()
    im.thumbnail((max_w, max_h))
    if im.mode in ("RGBA", "LA", "P"):
        # mesmo fundo branco do codec, senão o alfa vira preto
        im = im.convert("RGBA")
        bg = Image.new("RGB", im.size, (255, 255, 255))
        bg.paste(im, mask=im.getchannel("A"))
        im = bg
    buf = io.BytesIO()
    im.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def image_thumb(img: Image.Image) -> Tuple[str, int, int]:
    w, h = img.size
    b64 = _b64_jpeg(img, PREVIEW_BOX_W, PREVIEW_BOX_H, quality=PREVIEW_JPEG_Q)
    return b64, int(w), int(h)


def to_data_url(artifact: EncodedArtifact) -> str:
    return f"data:{artifact.format.value};base64," + base64.b64encode(artifact.data).decode("ascii")
