"""
controller.py

Orquestra a conversão com tamanho-alvo:

    IDLE -> BOUNDS_CHECK -> DIRECT_ENCODE                          -> DONE
                         -> RANGE_PROBE -> CEILING_CLAMP           -> DONE
                                        -> QUALITY_BINARY_SEARCH   -> DONE
                                        -> DIMENSION_STEP_DOWN -> QUALITY_BINARY_SEARCH -> DONE

Reduzir dimensões é o último recurso: só entra quando a sonda em `q_min`
no tamanho nativo já passa do alvo. Cada chamada mantém o próprio estado
(`_Run`); nada é compartilhado entre conversões.
"""

from __future__ import annotations

import logging
import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .codec import Encoder, encode
from .dimensions import shrink
from .engine_config import SearchConfig
from .errors import InvalidInputError, UnreachableTargetWarning
from .estimate import Estimator, get_estimator
from .models import (
    DecodedImage,
    OutputFormat,
    Outcome,
    PixelSize,
    SearchResult,
    SizeLimits,
    Stage,
)
from .schemas import TargetRequest
from .search import QualityProbe, quality_search

log = logging.getLogger(__name__)


@dataclass
class _Run:
    """Estado mutável de UMA chamada de `achieve_target`."""
    image: DecodedImage
    fmt: OutputFormat
    target_kb: Optional[float]
    size: PixelSize
    stages: List[Stage] = field(default_factory=list)
    ceiling: Optional[QualityProbe] = None
    floor: Optional[QualityProbe] = None
    last: Optional[QualityProbe] = None
    step_downs: int = 0
    unreachable: bool = False
    warnings: List[str] = field(default_factory=list)
    result: Optional[SearchResult] = None

    @property
    def target(self) -> float:
        if self.target_kb is None:
            raise RuntimeError("estado sem tamanho-alvo")
        return self.target_kb

    @property
    def closest(self) -> QualityProbe:
        if self.last is None:
            raise RuntimeError("nenhuma medição disponível")
        return self.last


class SizeTargetController:
    """Controlador sem estado entre chamadas; pode ser reutilizado por threads."""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        encoder: Encoder = encode,
        estimator: Optional[Estimator] = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.encoder = encoder
        self.estimator = estimator or get_estimator(self.config.estimator)

    # ---------- API ----------
    def achieve_target(
        self,
        image: DecodedImage,
        request: TargetRequest,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Converte `image` conforme `request` e devolve um `SearchResult` completo.

        `cancel_event`/`timeout` interrompem a busca entre codificações; o
        resultado é então a última medição válida (outcome CANCELLED).
        """
        return self._achieve(image, request, cancel_event, timeout, stacklevel=3)

    def probe_range(self, image: DecodedImage, fmt: OutputFormat) -> Optional[SizeLimits]:
        """Faixa (KB) alcançável sem reduzir dimensões; None para formatos lossless."""
        fmt = OutputFormat(fmt)
        if not fmt.supports_quality:
            return None
        ceiling, floor = self._probe_pair(image, image.size, fmt)
        return SizeLimits(min_kb=floor.estimated_kb, max_kb=ceiling.estimated_kb)

    def _achieve(
        self,
        image: DecodedImage,
        request: TargetRequest,
        cancel_event: Optional[threading.Event],
        timeout: Optional[float],
        stacklevel: int,
    ) -> SearchResult:
        # stacklevel aponta o aviso para quem chamou a API pública
        self._validate(image, request)
        deadline = time.monotonic() + timeout if timeout is not None else None

        def should_stop() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline

        run = _Run(image=image, fmt=request.format, target_kb=request.target_kb, size=image.size)
        stage = Stage.IDLE
        while stage is not Stage.DONE:
            run.stages.append(stage)
            stage = self._step(stage, run, should_stop)

        res = run.result
        if res is None:
            raise RuntimeError(f"conversão terminou sem resultado: {run.stages}")
        for msg in run.warnings:
            warnings.warn(msg, UnreachableTargetWarning, stacklevel=stacklevel)
        log.info(
            "conversão %s: %s %s q=%.3f %.1f KB (alvo %s)",
            res.outcome.value, run.fmt.pil_format, res.pixel_size, res.quality,
            res.estimated_kb, "auto" if run.target_kb is None else f"{run.target_kb:g} KB",
        )
        return res

    # ---------- estados ----------
    def _step(self, stage: Stage, run: _Run, should_stop) -> Stage:
        if stage is Stage.IDLE:
            return Stage.BOUNDS_CHECK
        if stage is Stage.BOUNDS_CHECK:
            if run.target_kb is None or not run.fmt.supports_quality:
                return Stage.DIRECT_ENCODE
            return Stage.RANGE_PROBE
        if stage is Stage.DIRECT_ENCODE:
            return self._direct_encode(run)
        if stage is Stage.RANGE_PROBE:
            return self._range_probe(run, should_stop)
        if stage is Stage.CEILING_CLAMP:
            return self._ceiling_clamp(run)
        if stage is Stage.DIMENSION_STEP_DOWN:
            return self._step_down(run, should_stop)
        if stage is Stage.QUALITY_BINARY_SEARCH:
            return self._binary_search(run, should_stop)
        raise RuntimeError(f"estado inesperado: {stage}")

    def _direct_encode(self, run: _Run) -> Stage:
        q = self.config.default_quality
        art = self.encoder(run.image, run.size, run.fmt, q)
        kb = self.estimator(art)
        notice = ""
        if run.target_kb is not None:
            notice = f"{run.fmt.extension.upper()} não permite ajustar o tamanho; alvo ignorado."
        run.result = self._result(run, QualityProbe(q, art, kb), Outcome.DIRECT, notice=notice)
        return Stage.DONE

    def _range_probe(self, run: _Run, should_stop) -> Stage:
        # as duas sondas sempre terminam: garantem um resultado mesmo se cancelado
        ceiling, floor = self._probe_pair(run.image, run.size, run.fmt)
        run.ceiling, run.floor = ceiling, floor
        target = run.target
        run.last = min((floor, ceiling), key=lambda p: abs(p.estimated_kb - target))
        log.debug("faixa nativa %s: %.1f KB .. %.1f KB", run.size,
                  floor.estimated_kb, ceiling.estimated_kb)

        if should_stop():
            return self._cancelled(run)
        if target > ceiling.estimated_kb:
            return Stage.CEILING_CLAMP
        if target < floor.estimated_kb:
            return Stage.DIMENSION_STEP_DOWN
        return Stage.QUALITY_BINARY_SEARCH

    def _ceiling_clamp(self, run: _Run) -> Stage:
        ceiling = run.ceiling
        if ceiling is None:
            raise RuntimeError("CEILING_CLAMP sem sonda em q_max")
        run.unreachable = True
        notice = (f"O alvo ({run.target:g} KB) passa do máximo alcançável "
                  f"({ceiling.estimated_kb:.1f} KB); usando a qualidade máxima.")
        self._warn(run, notice)
        run.result = self._result(run, ceiling, Outcome.ABOVE_CEILING, notice=notice)
        return Stage.DONE

    def _step_down(self, run: _Run, should_stop) -> Stage:
        cfg = self.config
        target = run.target
        fits = False
        while run.step_downs < cfg.max_step_downs:
            if should_stop():
                return self._cancelled(run)
            smaller = shrink(run.size, cfg.shrink_factor)
            if smaller == run.size:
                break  # o arredondamento não reduz mais
            run.size = smaller
            run.step_downs += 1
            art = self.encoder(run.image, run.size, run.fmt, cfg.q_min)
            probe = QualityProbe(cfg.q_min, art, self.estimator(art))
            run.last = probe
            log.debug("step-down %d: %s -> %.1f KB em q_min", run.step_downs, run.size, probe.estimated_kb)
            if probe.estimated_kb <= target:
                fits = True
                break

        if not fits:
            run.unreachable = True
            self._warn(
                run,
                f"O alvo ({target:g} KB) pode ser inalcançável mesmo reduzindo para {run.size} "
                f"após {run.step_downs} tentativas; usando o menor tamanho obtido.",
            )
        return Stage.QUALITY_BINARY_SEARCH

    def _binary_search(self, run: _Run, should_stop) -> Stage:
        target = run.target
        probe = quality_search(
            run.image, run.size, run.fmt, target,
            encoder=self.encoder, estimator=self.estimator, cfg=self.config,
            should_stop=should_stop, fallback=run.last,
        )
        run.last = probe
        if probe.stopped:
            return self._cancelled(run)

        if run.unreachable:
            outcome = Outcome.STEP_DOWN_EXHAUSTED
        elif run.step_downs == 0:
            outcome = Outcome.WITHIN_RANGE
        else:
            outcome = Outcome.STEPPED_DOWN

        notes = []
        if run.unreachable:
            notes.append(f"Não foi possível chegar a {target:g} KB; o menor resultado obtido "
                         f"tem {probe.estimated_kb:.1f} KB em {run.size}.")
        elif run.step_downs:
            notes.append(f"Imagem reduzida para {run.size} para caber em {target:g} KB.")
        if not probe.converged and not run.unreachable:
            notes.append(f"A busca não convergiu em {probe.iterations} iterações; "
                         f"resultado com {probe.estimated_kb:.1f} KB.")
        run.result = self._result(run, probe, outcome, notice=" ".join(notes))
        return Stage.DONE

    # ---------- helpers ----------
    def _cancelled(self, run: _Run) -> Stage:
        notice = "Busca interrompida; usando o melhor resultado encontrado até agora."
        log.warning(notice)
        run.result = self._result(run, run.closest, Outcome.CANCELLED, notice=notice)
        return Stage.DONE

    def _probe_pair(self, image: DecodedImage, size: PixelSize, fmt: OutputFormat) -> Tuple[QualityProbe, QualityProbe]:
        """Sondas independentes em q_max e q_min (em paralelo se configurado)."""
        cfg = self.config

        def probe(q: float) -> QualityProbe:
            art = self.encoder(image, size, fmt, q)
            return QualityProbe(q, art, self.estimator(art))

        if not cfg.parallel_probes:
            return probe(cfg.q_max), probe(cfg.q_min)
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="probe") as pool:
            hi = pool.submit(probe, cfg.q_max)
            lo = pool.submit(probe, cfg.q_min)
            # .result() repassa o EncodeError da sonda que falhou
            return hi.result(), lo.result()

    def _result(self, run: _Run, probe: QualityProbe, outcome: Outcome, notice: str = "") -> SearchResult:
        target = run.target_kb
        if outcome is Outcome.DIRECT:
            reached = target is None
        elif outcome is Outcome.CANCELLED:
            reached = False
        else:
            reached = probe.converged and not run.unreachable
        return SearchResult(
            pixel_size=run.size,
            quality=probe.quality,
            artifact=probe.artifact,
            estimated_kb=probe.estimated_kb,
            outcome=outcome,
            target_reached=reached,
            converged=probe.converged,
            step_downs=run.step_downs,
            iterations=probe.iterations,
            stages=tuple(run.stages) + (Stage.DONE,),
            notice=notice,
        )

    @staticmethod
    def _warn(run: _Run, msg: str) -> None:
        log.warning(msg)
        run.warnings.append(msg)

    @staticmethod
    def _validate(image: DecodedImage, request: TargetRequest) -> None:
        if image.width <= 0 or image.height <= 0:
            raise InvalidInputError(f"dimensões inválidas: {image.width}x{image.height}")
        if not request.is_valid_target:
            raise InvalidInputError(f"tamanho-alvo deve ser positivo: {request.target_kb!r}")


def achieve_target(
    image: DecodedImage,
    request: TargetRequest,
    config: Optional[SearchConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> SearchResult:
    """Atalho com o codificador Pillow padrão."""
    return SizeTargetController(config)._achieve(image, request, cancel_event, timeout, stacklevel=3)
