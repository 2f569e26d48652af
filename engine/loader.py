"""
loader.py

Decodificação do arquivo recebido da UI (bytes -> `DecodedImage`).
"""

from __future__ import annotations
import base64, binascii, io

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import InvalidInputError
from .models import DecodedImage


def b64_to_bytes(b64: str) -> bytes:
    # aceita tanto o payload puro quanto uma data URL inteira
    if b64.startswith("data:") and "," in b64:
        b64 = b64.split(",", 1)[1]
    try:
        return base64.b64decode(b64.encode("ascii"), validate=False)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise InvalidInputError(f"conteúdo base64 inválido: {e}") from e


def load_image(data: bytes) -> DecodedImage:
    """Decodifica bytes de imagem (JPG/PNG/WEBP/GIF/BMP/TIFF...).

    Aplica a orientação EXIF, como o navegador faz ao desenhar a imagem.

    Raises:
        InvalidInputError: se os bytes não forem uma imagem reconhecida.
    """
    if not data:
        raise InvalidInputError("arquivo vazio")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError(f"arquivo não é uma imagem válida: {e}") from e
    img = ImageOps.exif_transpose(img)
    return DecodedImage.from_pil(img)
