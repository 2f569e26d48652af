"""
search.py

Busca binária da qualidade num tamanho de pixels FIXO.

Supõe que o tamanho codificado é não-decrescente com a qualidade. A
tolerância é relativa ao alvo (`tolerance_pct`, 5% por padrão) com um piso
absoluto opcional (`min_tolerance_kb`): um valor fixo em KB aperta demais
alvos grandes e afrouxa demais alvos pequenos.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .codec import Encoder
from .engine_config import SearchConfig
from .estimate import Estimator
from .models import DecodedImage, EncodedArtifact, OutputFormat, PixelSize

log = logging.getLogger(__name__)

StopCheck = Callable[[], bool]


@dataclass(frozen=True)
class QualityProbe:
    """Última medição da busca: qualidade, artefato e tamanho estimado."""
    quality: float
    artifact: EncodedArtifact
    estimated_kb: float
    iterations: int = 0
    converged: bool = False
    stopped: bool = False


def tolerance_kb(target_kb: float, cfg: SearchConfig) -> float:
    return max(target_kb * cfg.tolerance_pct, cfg.min_tolerance_kb)


def quality_search(
    image: DecodedImage,
    size: PixelSize,
    fmt: OutputFormat,
    target_kb: float,
    encoder: Encoder,
    estimator: Estimator,
    cfg: SearchConfig,
    should_stop: Optional[StopCheck] = None,
    fallback: Optional[QualityProbe] = None,
) -> QualityProbe:
    """Aproxima `target_kb` variando só a qualidade.

    Retorna a última qualidade testada (mesmo sem convergir) junto com o
    artefato medido. Se `should_stop` disparar antes da primeira iteração,
    devolve `fallback` marcado como interrompido.
    """
    tol = tolerance_kb(target_kb, cfg)
    min_q, max_q = cfg.q_min, cfg.q_max
    best: Optional[QualityProbe] = None

    for i in range(cfg.max_iters):
        if should_stop is not None and should_stop():
            log.info("busca interrompida após %d iterações", i)
            last = best or fallback
            if last is None:
                break
            return QualityProbe(last.quality, last.artifact, last.estimated_kb,
                                iterations=i, converged=False, stopped=True)

        mid_q = (min_q + max_q) / 2
        art = encoder(image, size, fmt, mid_q)
        kb = estimator(art)
        log.debug("iter %d: q=%.4f -> %.2f KB (alvo %.2f ± %.2f)", i + 1, mid_q, kb, target_kb, tol)

        if abs(kb - target_kb) <= tol:
            return QualityProbe(mid_q, art, kb, iterations=i + 1, converged=True)

        if kb > target_kb:
            max_q = mid_q   # grande demais: baixa o teto
        else:
            min_q = mid_q   # pequeno demais: sobe o piso

        best = QualityProbe(mid_q, art, kb, iterations=i + 1, converged=False)

    if best is not None:
        return best

    # interrompido antes de medir qualquer coisa e sem fallback: mede o teto
    art = encoder(image, size, fmt, cfg.q_max)
    return QualityProbe(cfg.q_max, art, estimator(art), iterations=0, converged=False, stopped=True)
