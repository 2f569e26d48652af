from __future__ import annotations

import threading
import warnings
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

import engine.controller as controller_mod
from engine.controller import SizeTargetController, achieve_target
from engine.engine_config import SearchConfig
from engine.estimate import estimate_kb_via_transport
from engine.errors import EncodeError, InvalidInputError, UnreachableTargetWarning
from engine.models import DecodedImage, OutputFormat, Outcome, PixelSize, Stage
from engine.schemas import TargetRequest

from .conftest import LinearEncoder


def _pixels():
    return Image.new("RGB", (1, 1))


def _ctl(encoder, cfg=None):
    return SizeTargetController(cfg or SearchConfig(parallel_probes=False), encoder=encoder)


def _req(target=None, fmt=OutputFormat.JPEG):
    return TargetRequest(format=fmt, target_kb=target)


class TestDirectEncode:
    def test_no_target_uses_default_quality_at_native_size(self, big_image, linear_encoder):
        res = _ctl(linear_encoder).achieve_target(big_image, _req())
        assert res.quality == pytest.approx(0.92)
        assert res.pixel_size == PixelSize(1000, 800)
        assert res.outcome is Outcome.DIRECT
        assert res.target_reached
        assert linear_encoder.calls == [(PixelSize(1000, 800), 0.92)]
        assert Stage.QUALITY_BINARY_SEARCH not in res.stages
        assert res.stages[0] is Stage.IDLE and res.stages[-1] is Stage.DONE

    @pytest.mark.parametrize("target", [None, 1.0, 50.0, 10_000.0])
    def test_lossless_never_searches(self, big_image, linear_encoder, monkeypatch, target):
        def boom(*a, **k):
            raise AssertionError("não deveria ser chamado")

        monkeypatch.setattr(controller_mod, "quality_search", boom)
        monkeypatch.setattr(controller_mod, "shrink", boom)
        res = _ctl(linear_encoder).achieve_target(big_image, _req(target, OutputFormat.PNG))
        assert res.outcome is Outcome.DIRECT
        assert res.pixel_size == big_image.size
        assert len(linear_encoder.calls) == 1
        assert Stage.DIMENSION_STEP_DOWN not in res.stages
        if target is not None:
            assert not res.target_reached
            assert res.notice


class TestWithinRange:
    def test_50kb_scenario(self, big_image, linear_encoder):
        res = _ctl(linear_encoder).achieve_target(big_image, _req(50.0))
        assert res.outcome is Outcome.WITHIN_RANGE
        assert res.converged and res.target_reached
        assert abs(res.estimated_kb - 50.0) <= 2.5
        assert res.pixel_size == PixelSize(1000, 800)
        assert res.step_downs == 0
        # duas sondas + iterações da busca
        assert len(linear_encoder.calls) == 2 + res.iterations
        assert linear_encoder.qualities[:2] == [1.0, 0.05]
        assert res.stages == (
            Stage.IDLE, Stage.BOUNDS_CHECK, Stage.RANGE_PROBE,
            Stage.QUALITY_BINARY_SEARCH, Stage.DONE,
        )

    def test_unconverged_search_is_not_reported_as_reached(self, big_image, linear_encoder):
        cfg = SearchConfig(max_iters=2, parallel_probes=False)
        res = _ctl(linear_encoder, cfg).achieve_target(big_image, _req(50.0))
        assert res.outcome is Outcome.WITHIN_RANGE
        assert not res.converged
        assert not res.target_reached
        assert "não convergiu" in res.notice

    def test_transport_estimator_drives_the_search(self, big_image, linear_encoder):
        cfg = SearchConfig(estimator="transport", parallel_probes=False)
        res = _ctl(linear_encoder, cfg).achieve_target(big_image, _req(50.0))
        assert res.outcome is Outcome.WITHIN_RANGE
        assert res.converged and res.target_reached
        assert res.estimated_kb == estimate_kb_via_transport(res.artifact)
        assert abs(res.estimated_kb - 50.0) <= 2.5

    def test_parallel_probes_give_same_result(self, big_image):
        serial = _ctl(LinearEncoder(big_image.size)).achieve_target(big_image, _req(120.0))
        parallel = _ctl(LinearEncoder(big_image.size), SearchConfig(parallel_probes=True)) \
            .achieve_target(big_image, _req(120.0))
        assert parallel.quality == serial.quality
        assert parallel.artifact.data == serial.artifact.data


class TestCeiling:
    def test_target_above_max_clamps_to_q_max(self, big_image, linear_encoder):
        with pytest.warns(UnreachableTargetWarning):
            res = _ctl(linear_encoder).achieve_target(big_image, _req(400.0))
        assert res.outcome is Outcome.ABOVE_CEILING
        assert res.quality == 1.0
        assert res.estimated_kb == pytest.approx(300.0)
        assert res.pixel_size == big_image.size
        assert not res.target_reached
        assert len(linear_encoder.calls) == 2


    def test_warning_points_at_caller(self, big_image, linear_encoder):
        with pytest.warns(UnreachableTargetWarning) as rec:
            _ctl(linear_encoder).achieve_target(big_image, _req(400.0))
        assert rec[0].filename == __file__


class TestStepDown:
    def test_2kb_scenario_shrinks_then_searches(self, big_image, linear_encoder):
        res = _ctl(linear_encoder).achieve_target(big_image, _req(2.0))
        assert res.outcome is Outcome.STEPPED_DOWN
        assert 1 <= res.step_downs <= 10
        assert res.step_downs == 4
        assert res.pixel_size == PixelSize(410, 328)
        assert res.target_reached and res.converged
        assert abs(res.estimated_kb - 2.0) <= 0.1
        assert Stage.DIMENSION_STEP_DOWN in res.stages
        assert res.stages.index(Stage.DIMENSION_STEP_DOWN) < res.stages.index(Stage.QUALITY_BINARY_SEARCH)
        sizes = [s for s, _ in linear_encoder.calls]
        assert all(a.width >= b.width and a.height >= b.height for a, b in zip(sizes, sizes[1:]))

    def test_exhausted_attempts_still_return_result(self, big_image, linear_encoder):
        cfg = SearchConfig(max_step_downs=3, parallel_probes=False)
        with pytest.warns(UnreachableTargetWarning):
            res = _ctl(linear_encoder, cfg).achieve_target(big_image, _req(0.5))
        assert res.outcome is Outcome.STEP_DOWN_EXHAUSTED
        assert res.step_downs == 3
        assert not res.target_reached
        assert res.pixel_size == PixelSize(512, 410)
        assert res.artifact.data
        assert res.notice

    def test_stops_when_size_cannot_shrink(self):
        tiny = DecodedImage(pixels=_pixels(), width=2, height=2)
        enc = LinearEncoder(tiny.size, kb_min=10, kb_max=20)
        with pytest.warns(UnreachableTargetWarning):
            res = _ctl(enc).achieve_target(tiny, _req(1.0))
        assert res.step_downs == 0
        assert res.pixel_size == PixelSize(2, 2)
        assert res.outcome is Outcome.STEP_DOWN_EXHAUSTED
        assert not res.target_reached


class TestErrors:
    @pytest.mark.parametrize("target", [0.0, -5.0, float("nan"), float("inf")])
    def test_rejects_bad_target_before_encoding(self, big_image, linear_encoder, target):
        with pytest.raises(InvalidInputError):
            _ctl(linear_encoder).achieve_target(big_image, _req(target))
        assert linear_encoder.calls == []

    def test_rejects_bad_dimensions(self):
        with pytest.raises(InvalidInputError):
            DecodedImage(pixels=_pixels(), width=0, height=10)

    @pytest.mark.parametrize("parallel", [False, True])
    def test_failed_probe_aborts(self, big_image, parallel):
        def failing(image, size, fmt, quality):
            if quality == 0.05:
                raise EncodeError("codec quebrado")
            return LinearEncoder(big_image.size)(image, size, fmt, quality)

        with pytest.raises(EncodeError):
            _ctl(failing, SearchConfig(parallel_probes=parallel)).achieve_target(big_image, _req(50.0))

    def test_run_state_without_target_or_probe_raises(self, big_image):
        run = controller_mod._Run(image=big_image, fmt=OutputFormat.JPEG, target_kb=None, size=big_image.size)
        with pytest.raises(RuntimeError):
            run.target
        with pytest.raises(RuntimeError):
            run.closest

    def test_failure_does_not_leak_into_next_request(self, big_image, linear_encoder):
        ctl = _ctl(linear_encoder)
        with pytest.raises(InvalidInputError):
            ctl.achieve_target(big_image, _req(-1.0))
        res = ctl.achieve_target(big_image, _req(50.0))
        assert res.outcome is Outcome.WITHIN_RANGE


class TestCancellation:
    def test_cancel_before_start_returns_probe(self, big_image, linear_encoder):
        ev = threading.Event()
        ev.set()
        res = _ctl(linear_encoder).achieve_target(big_image, _req(50.0), cancel_event=ev)
        assert res.outcome is Outcome.CANCELLED
        assert len(linear_encoder.calls) == 2
        # a sonda mais próxima do alvo (10 KB em q_min)
        assert res.quality == 0.05
        assert res.artifact.data
        assert not res.target_reached

    def test_zero_timeout_returns_a_full_result(self, big_image, linear_encoder):
        with warnings.catch_warnings():
            warnings.simplefilter("error", UnreachableTargetWarning)
            res = _ctl(linear_encoder).achieve_target(big_image, _req(2.0), timeout=0.0)
        assert res.outcome is Outcome.CANCELLED
        assert res.pixel_size == big_image.size
        assert res.quality == 0.05
        assert res.estimated_kb == pytest.approx(10.0)

    def test_cancel_mid_search(self, big_image):
        ev = threading.Event()
        base = LinearEncoder(big_image.size)

        def enc(image, size, fmt, quality):
            art = base(image, size, fmt, quality)
            if len(base.calls) >= 4:
                ev.set()
            return art

        res = _ctl(enc).achieve_target(big_image, _req(50.0), cancel_event=ev)
        assert res.outcome is Outcome.CANCELLED
        assert len(base.calls) == 4
        assert res.quality == base.qualities[-1]


class TestProbeRange:
    def test_limits_at_native_size(self, big_image, linear_encoder):
        lim = _ctl(linear_encoder).probe_range(big_image, OutputFormat.JPEG)
        assert lim.min_kb == pytest.approx(10.0)
        assert lim.max_kb == pytest.approx(300.0)

    def test_lossless_has_no_limits(self, big_image, linear_encoder):
        assert _ctl(linear_encoder).probe_range(big_image, OutputFormat.PNG) is None
        assert linear_encoder.calls == []


def test_concurrent_requests_do_not_interfere(big_image):
    ctl = SizeTargetController(SearchConfig(parallel_probes=False), encoder=LinearEncoder(big_image.size))
    targets = [20.0, 50.0, 100.0, 200.0, 280.0]
    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(lambda t: ctl.achieve_target(big_image, _req(t)), targets))
    for t, res in zip(targets, results):
        assert abs(res.estimated_kb - t) <= 0.05 * t


class TestWithPillow:
    def test_huge_target_keeps_max_quality(self, photo):
        with pytest.warns(UnreachableTargetWarning):
            res = achieve_target(photo, _req(50_000.0))
        assert res.quality == 1.0
        assert res.pixel_size == photo.size

    def test_shortcut_warning_points_at_caller(self, photo):
        with pytest.warns(UnreachableTargetWarning) as rec:
            achieve_target(photo, _req(50_000.0))
        assert rec[0].filename == __file__

    def test_target_below_floor_steps_down(self, photo):
        lim = SizeTargetController().probe_range(photo, OutputFormat.JPEG)
        with warnings.catch_warnings():
            # o alvo pode ficar abaixo até do cabeçalho do JPEG
            warnings.simplefilter("ignore", UnreachableTargetWarning)
            res = achieve_target(photo, _req(lim.min_kb * 0.5), config=SearchConfig(min_tolerance_kb=0.05))
        assert 1 <= res.step_downs <= 10
        assert res.pixel_size.width < photo.width
        assert res.estimated_kb == len(res.artifact.data) / 1024

    def test_mid_target_lands_inside_range(self, photo):
        ctl = SizeTargetController()
        lim = ctl.probe_range(photo, OutputFormat.JPEG)
        target = (lim.min_kb + lim.max_kb) / 2
        res = ctl.achieve_target(photo, _req(target))
        assert res.outcome is Outcome.WITHIN_RANGE
        assert lim.min_kb <= res.estimated_kb <= lim.max_kb
        assert abs(res.estimated_kb - target) <= 0.1 * target
