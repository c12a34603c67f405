import numpy as np
import pytest

from watermark_cleaner.core.config import Settings
from watermark_cleaner.schemas.cleanup import ColorMode, IntensityTier
from watermark_cleaner.services import local_inpainter
from watermark_cleaner.services.classifier import DEFAULT_TIER_THRESHOLDS, PixelClassifier, classify


def _pixel(color: tuple[int, int, int]) -> np.ndarray:
    return np.array([[color]], dtype=np.uint8)


def test_gray_rectangle_on_black_is_masked_exactly_and_filled_black():
    frame = np.zeros((40, 40, 3), dtype=np.uint8)
    frame[10:14, 8:30] = 200
    expected = np.zeros((40, 40), dtype=bool)
    expected[10:14, 8:30] = True

    mask = classify(frame, ColorMode.gray, IntensityTier.medium)

    assert mask.dtype == bool
    assert np.array_equal(mask, expected)

    cleaned = local_inpainter.fill(frame, mask)
    assert not cleaned.any()


@pytest.mark.parametrize("mode", list(ColorMode))
@pytest.mark.parametrize("tier", list(IntensityTier))
def test_dark_ink_is_never_flagged(mode, tier):
    frame = np.array([[(40, 40, 40), (90, 10, 10), (0, 0, 0)]], dtype=np.uint8)

    assert not classify(frame, mode, tier).any()


def test_gray_tolerance_depends_on_tier():
    tinted = _pixel((200, 240, 200))

    assert not classify(tinted, "gray", "medium").any()
    assert classify(tinted, "gray", "aggressive").all()


def test_gray_band_excludes_pure_white():
    assert not classify(_pixel((255, 255, 255)), "gray", "medium").any()


def test_channel_dominance_modes():
    assert classify(_pixel((230, 90, 90)), "red", "medium").all()
    assert not classify(_pixel((120, 20, 20)), "red", "medium").any()
    assert classify(_pixel((60, 220, 80)), "green", "medium").all()
    assert classify(_pixel((70, 90, 240)), "blue", "medium").all()
    assert not classify(_pixel((230, 90, 90)), "blue", "medium").any()


@pytest.mark.parametrize("tier", list(IntensityTier))
def test_saturated_stamps_are_flagged_in_every_tier(tier):
    stamp = np.full((4, 4, 3), (230, 30, 30), dtype=np.uint8)

    assert classify(stamp, "red", tier).all()
    assert classify(stamp, "all", tier).all()
    assert classify(_pixel((30, 220, 30)), "green", tier).all()
    assert classify(_pixel((20, 20, 235)), "blue", tier).all()
    assert classify(_pixel((235, 225, 0)), "yellow", tier).all()


def test_yellow_mode():
    assert classify(_pixel((240, 230, 60)), "yellow", "medium").all()
    assert not classify(_pixel((240, 150, 60)), "yellow", "medium").any()


def test_all_mode_keeps_only_dark_ink_and_blank_background():
    frame = np.array(
        [[(200, 200, 200), (230, 90, 90), (0, 0, 0), (255, 255, 255), (30, 30, 30)]],
        dtype=np.uint8,
    )

    mask = classify(frame, "all", "medium")

    assert mask.tolist() == [[True, True, False, False, False]]


def test_tier_overrides_from_settings():
    settings = Settings(CLASSIFIER_TIER_OVERRIDES={"medium": {"min_brightness": 210}})
    classifier = PixelClassifier.from_settings(settings)

    assert classifier.thresholds_for("medium").min_brightness == 210
    assert classifier.thresholds_for("light") == DEFAULT_TIER_THRESHOLDS[IntensityTier.light]
    assert not classifier.classify(_pixel((200, 200, 200)), "gray", "medium").any()


def test_unknown_override_field_is_rejected():
    settings = Settings(CLASSIFIER_TIER_OVERRIDES={"medium": {"threshold": 1}})

    with pytest.raises(ValueError):
        PixelClassifier.from_settings(settings)


def test_rejects_non_rgb_frames():
    with pytest.raises(ValueError):
        classify(np.zeros((4, 4), dtype=np.uint8), "gray", "medium")
