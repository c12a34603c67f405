import numpy as np
import pytest

from watermark_cleaner.services.mask import dilate


def _seed() -> np.ndarray:
    mask = np.zeros((15, 15), dtype=bool)
    mask[7, 7] = True
    mask[2, 12] = True
    return mask


def test_radius_zero_returns_a_copy():
    mask = _seed()
    result = dilate(mask, 0)

    assert np.array_equal(result, mask)
    assert result is not mask


def test_radius_one_grows_to_chebyshev_square():
    result = dilate(_seed(), 1)

    assert result[6:9, 6:9].all()
    assert result.sum() == 9 + 9
    assert not result[5, 7]


def test_output_is_superset_and_monotonic_in_radius():
    rng = np.random.default_rng(7)
    mask = rng.random((30, 30)) > 0.97

    previous = mask
    for radius in range(0, 5):
        grown = dilate(mask, radius)
        assert grown.dtype == bool
        assert not (mask & ~grown).any()
        assert not (previous & ~grown).any()
        previous = grown


def test_empty_mask_stays_empty():
    assert not dilate(np.zeros((5, 5), dtype=bool), 3).any()


def test_negative_radius_raises():
    with pytest.raises(ValueError):
        dilate(_seed(), -1)
