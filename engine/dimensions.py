"""Redução de dimensões usada quando só a qualidade não basta."""

from __future__ import annotations

from .errors import InvalidInputError
from .models import PixelSize


def shrink(size: PixelSize, factor: float) -> PixelSize:
    """Aplica `factor` aos dois lados, arredonda e nunca desce de 1x1."""
    if not (0.0 < factor < 1.0):
        raise InvalidInputError(f"fator de redução fora de (0,1): {factor}")
    w = max(1, int(round(size.width * factor)))
    h = max(1, int(round(size.height * factor)))
    return PixelSize(w, h)
