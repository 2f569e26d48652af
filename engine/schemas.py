"""
engine/schemas.py

Modelos de entrada validados com pydantic.
- `TargetRequest`: formato + tamanho-alvo opcional (KB) para o controlador.
- `FileIn`: arquivo recebido da UI (`name`, `type`, `bytes_b64`).
- `LimitsIn` / `ConvertIn`: payloads dos métodos `limits` e `convert` da ponte JS.
"""

# engine/schemas.py
from __future__ import annotations
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .models import OutputFormat


class TargetRequest(BaseModel):
    """Pedido imutável; `target_kb=None` -> codificação única na qualidade padrão."""
    model_config = ConfigDict(frozen=True)

    format: OutputFormat
    target_kb: Optional[float] = None

    @property
    def is_valid_target(self) -> bool:
        t = self.target_kb
        return t is None or (math.isfinite(t) and t > 0)


class FileIn(BaseModel):
    name: str = "imagem"
    type: str = ""
    bytes_b64: str


class LimitsIn(BaseModel):
    format: OutputFormat = OutputFormat.JPEG


class ConvertIn(BaseModel):
    format: OutputFormat = OutputFormat.JPEG
    target_kb: Optional[float] = None

    @field_validator("target_kb", mode="before")
    @classmethod
    def _blank_is_auto(cls, v):
        # campo vazio na UI = "Auto"
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("target_kb")
    @classmethod
    def _positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (math.isfinite(v) and v > 0):
            raise ValueError("o tamanho-alvo deve ser um número positivo")
        return v

    def to_request(self) -> TargetRequest:
        return TargetRequest(format=self.format, target_kb=self.target_kb)
