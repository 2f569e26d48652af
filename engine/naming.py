"""
naming.py

Nome do arquivo de saída e formatação de tamanhos para a UI.
"""

from __future__ import annotations
import time
from pathlib import PurePath
from typing import Optional

from .models import OutputFormat

OUTPUT_TAG = "fem"
_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def output_filename(original_name: str, fmt: OutputFormat, now_ms: Optional[int] = None) -> str:
    """`foto.png` -> `foto_fem_1700000000000.jpeg` (extensão do formato escolhido)."""
    stem = PurePath(original_name or "imagem").name.split(".")[0] or "imagem"
    ts = int(time.time() * 1000) if now_ms is None else int(now_ms)
    return f"{stem}_{OUTPUT_TAG}_{ts}.{OutputFormat(fmt).extension}"


def format_bytes(n: int, decimals: int = 2) -> str:
    if n <= 0:
        return "0 Bytes"
    i = 0
    while i < len(_UNITS) - 1 and n >= 1024 ** (i + 1):
        i += 1
    value = round(n / 1024 ** i, decimals)
    # 12.50 -> 12.5, 3.00 -> 3
    return f"{value:g} {_UNITS[i]}"
