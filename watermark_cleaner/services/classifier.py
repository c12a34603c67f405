"""Pixel-level watermark candidate classification."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Mapping

import numpy as np

from watermark_cleaner.core.config import Settings
from watermark_cleaner.schemas.cleanup import ColorMode, IntensityTier


@dataclass(frozen=True)
class TierThresholds:
    """Brightness band and hue tolerance for one intensity tier.

    Pixels darker than ``ink_floor`` are never flagged, whatever the colour
    mode, so dark foreground text always survives. Near-gray pixels are
    measured by mean brightness, tinted ones by their brightest channel.
    """

    min_brightness: int
    max_brightness: int
    tolerance: int
    ink_floor: int


DEFAULT_TIER_THRESHOLDS: dict[IntensityTier, TierThresholds] = {
    IntensityTier.light: TierThresholds(min_brightness=180, max_brightness=245, tolerance=15, ink_floor=120),
    IntensityTier.medium: TierThresholds(min_brightness=160, max_brightness=250, tolerance=25, ink_floor=100),
    IntensityTier.aggressive: TierThresholds(min_brightness=130, max_brightness=254, tolerance=40, ink_floor=80),
}

_CHANNEL_INDEX = {ColorMode.red: 0, ColorMode.green: 1, ColorMode.blue: 2}


class PixelClassifier:
    """Flag pixels that look like overlay rather than page content."""

    def __init__(
        self,
        thresholds: Mapping[IntensityTier, TierThresholds] | None = None,
        color_margin: int = 40,
        color_min: int = 180,
    ) -> None:
        self._thresholds = dict(DEFAULT_TIER_THRESHOLDS)
        if thresholds:
            self._thresholds.update(thresholds)
        self.color_margin = color_margin
        self.color_min = color_min

    @classmethod
    def from_settings(cls, settings: Settings) -> "PixelClassifier":
        known = {item.name for item in fields(TierThresholds)}
        thresholds: dict[IntensityTier, TierThresholds] = {}
        for tier_name, overrides in settings.CLASSIFIER_TIER_OVERRIDES.items():
            tier = IntensityTier(tier_name)
            unknown = set(overrides) - known
            if unknown:
                raise ValueError(f"Unknown threshold fields for tier '{tier_name}': {sorted(unknown)}")
            thresholds[tier] = replace(DEFAULT_TIER_THRESHOLDS[tier], **overrides)
        return cls(
            thresholds=thresholds,
            color_margin=settings.CLASSIFIER_COLOR_MARGIN,
            color_min=settings.CLASSIFIER_COLOR_MIN,
        )

    def thresholds_for(self, tier: IntensityTier | str) -> TierThresholds:
        return self._thresholds[IntensityTier(tier)]

    def classify(
        self,
        frame: np.ndarray,
        color_mode: ColorMode | str,
        tier: IntensityTier | str,
    ) -> np.ndarray:
        """Return a boolean mask of watermark candidate pixels."""

        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError(f"Expected an RGB frame, got shape {frame.shape}.")

        mode = ColorMode(color_mode)
        limits = self.thresholds_for(tier)

        rgb = frame[:, :, :3].astype(np.int16)
        red, green, blue = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]
        brightness = rgb.sum(axis=2) / 3.0
        variation = rgb.max(axis=2) - rgb.min(axis=2)
        above_ink = brightness >= limits.ink_floor
        tint_above_ink = rgb.max(axis=2) >= limits.ink_floor

        if mode is ColorMode.gray:
            return self._gray(brightness, variation, limits)
        if mode in _CHANNEL_INDEX:
            return self._dominant(rgb, _CHANNEL_INDEX[mode]) & tint_above_ink
        if mode is ColorMode.yellow:
            return self._yellow(red, green, blue) & tint_above_ink

        near_gray = (variation <= limits.tolerance) & above_ink & (brightness <= limits.max_brightness)
        tinted = self._yellow(red, green, blue)
        for index in _CHANNEL_INDEX.values():
            tinted |= self._dominant(rgb, index)
        return near_gray | (tinted & tint_above_ink)

    @staticmethod
    def _gray(brightness: np.ndarray, variation: np.ndarray, limits: TierThresholds) -> np.ndarray:
        return (
            (variation <= limits.tolerance)
            & (brightness >= limits.min_brightness)
            & (brightness <= limits.max_brightness)
        )

    def _dominant(self, rgb: np.ndarray, index: int) -> np.ndarray:
        channel = rgb[:, :, index]
        others = np.delete(rgb, index, axis=2).max(axis=2)
        return (channel - others >= self.color_margin) & (channel >= self.color_min)

    def _yellow(self, red: np.ndarray, green: np.ndarray, blue: np.ndarray) -> np.ndarray:
        return (
            (np.minimum(red, green) - blue >= self.color_margin)
            & (red >= self.color_min)
            & (green >= self.color_min)
        )


def classify(frame: np.ndarray, color_mode: ColorMode | str, tier: IntensityTier | str) -> np.ndarray:
    """Classify ``frame`` with the default thresholds."""

    return PixelClassifier().classify(frame, color_mode, tier)
