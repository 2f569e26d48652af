"""
engine/engine_config.py

Define os formatos de saída e os parâmetros da busca por tamanho-alvo.
`FORMATS` mapeia: mime -> {pil, ext, quality, alpha}
Os parâmetros podem ser sobrescritos por variáveis de ambiente `IMG_*`.
"""

# engine/engine_config.py
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, Dict

from .errors import InvalidInputError

# Mesmos formatos do <select> do app original
FORMATS: Dict[str, dict] = {
    # Lossy-A: sem alfa -> compõe sobre fundo branco antes de codificar
    "image/jpeg": {"pil": "JPEG", "ext": "jpeg", "quality": True,  "alpha": False},
    # Lossy-B: aceita alfa
    "image/webp": {"pil": "WEBP", "ext": "webp", "quality": True,  "alpha": True},
    # Lossless: qualidade ignorada, tamanho depende só do conteúdo
    "image/png":  {"pil": "PNG",  "ext": "png",  "quality": False, "alpha": True},
}

# nome -> (variável de ambiente, default, conversor)
_ENV: Dict[str, tuple] = {
    "default_quality":  ("IMG_DEFAULT_QUALITY",  "0.92",  float),
    "q_min":            ("IMG_Q_MIN",            "0.05",  float),
    "q_max":            ("IMG_Q_MAX",            "1.0",   float),
    "max_iters":        ("IMG_MAX_ITERS",        "10",    int),
    "tolerance_pct":    ("IMG_TOLERANCE_PCT",    "0.05",  float),  # 5% do alvo
    "min_tolerance_kb": ("IMG_MIN_TOLERANCE_KB", "0.0",   float),
    "shrink_factor":    ("IMG_SHRINK_FACTOR",    "0.8",   float),  # -20% por tentativa
    "max_step_downs":   ("IMG_MAX_STEP_DOWNS",   "10",    int),
    "parallel_probes":  ("IMG_PARALLEL_PROBES",  "1",     lambda v: v.lower() not in ("0", "false", "no")),
    "estimator":        ("IMG_ESTIMATOR",        "exact", str),    # 'exact' | 'transport'
}


def _read_env() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, (var, default, conv) in _ENV.items():
        raw = os.getenv(var, default)
        try:
            out[key] = conv(raw)
        except ValueError as e:
            raise InvalidInputError(f"{var}={raw!r} inválido") from e
    return out


_defaults = _read_env()

DEFAULT_QUALITY: float = _defaults["default_quality"]
Q_MIN: float = _defaults["q_min"]
Q_MAX: float = _defaults["q_max"]
MAX_ITERS: int = _defaults["max_iters"]
TOLERANCE_PCT: float = _defaults["tolerance_pct"]
MIN_TOLERANCE_KB: float = _defaults["min_tolerance_kb"]
SHRINK_FACTOR: float = _defaults["shrink_factor"]
MAX_STEP_DOWNS: int = _defaults["max_step_downs"]
PARALLEL_PROBES: bool = _defaults["parallel_probes"]
ESTIMATOR: str = _defaults["estimator"]


@dataclass(frozen=True)
class SearchConfig:
    """Parâmetros de uma busca. Os defaults vêm das constantes acima."""
    default_quality: float = DEFAULT_QUALITY
    q_min: float = Q_MIN
    q_max: float = Q_MAX
    max_iters: int = MAX_ITERS
    tolerance_pct: float = TOLERANCE_PCT
    min_tolerance_kb: float = MIN_TOLERANCE_KB
    shrink_factor: float = SHRINK_FACTOR
    max_step_downs: int = MAX_STEP_DOWNS
    parallel_probes: bool = PARALLEL_PROBES
    estimator: str = ESTIMATOR

    def __post_init__(self) -> None:
        # qualidade 0 é degenerada em alguns codecs
        if not (0.0 < self.q_min < self.q_max <= 1.0):
            raise InvalidInputError(f"faixa de qualidade inválida: [{self.q_min}, {self.q_max}]")
        if not (0.0 < self.default_quality <= 1.0):
            raise InvalidInputError(f"qualidade padrão inválida: {self.default_quality}")
        if self.max_iters < 1 or self.max_step_downs < 0:
            raise InvalidInputError("max_iters >= 1 e max_step_downs >= 0")
        if self.tolerance_pct < 0 or self.min_tolerance_kb < 0:
            raise InvalidInputError("tolerância não pode ser negativa")
        if not (0.0 < self.shrink_factor < 1.0):
            raise InvalidInputError(f"shrink_factor fora de (0,1): {self.shrink_factor}")
        if self.estimator not in ("exact", "transport"):
            raise InvalidInputError(f"estimador desconhecido: {self.estimator}")

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Relê o ambiente (as constantes do módulo são lidas só no import)."""
        return cls(**_read_env())
