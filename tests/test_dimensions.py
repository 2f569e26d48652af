import pytest

from engine.dimensions import shrink
from engine.errors import InvalidInputError
from engine.models import PixelSize


def test_shrink_both_sides():
    assert shrink(PixelSize(1000, 800), 0.8) == PixelSize(800, 640)


def test_shrink_rounds_to_nearest():
    assert shrink(PixelSize(512, 512), 0.8) == PixelSize(410, 410)


def test_floor_is_one_by_one():
    assert shrink(PixelSize(1, 1), 0.5) == PixelSize(1, 1)
    assert shrink(PixelSize(3, 1), 0.1) == PixelSize(1, 1)


def test_repeated_shrink_is_non_increasing():
    size = PixelSize(37, 11)
    for _ in range(30):
        nxt = shrink(size, 0.8)
        assert nxt.width <= size.width and nxt.height <= size.height
        size = nxt
    # 2 * 0.8 arredonda de volta para 2: a redução para aí
    assert size == PixelSize(2, 2)
    assert shrink(size, 0.8) == size


@pytest.mark.parametrize("factor", [0.0, 1.0, 1.5, -0.2])
def test_rejects_factor_outside_open_interval(factor):
    with pytest.raises(InvalidInputError):
        shrink(PixelSize(10, 10), factor)
