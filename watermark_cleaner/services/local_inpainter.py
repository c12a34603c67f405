"""Neighbourhood-average inpainting, the last-resort fallback."""

from __future__ import annotations

import cv2
import numpy as np


def fill(frame: np.ndarray, mask: np.ndarray, window: int = 5, passes: int = 1) -> np.ndarray:
    """Replace masked pixels with the mean colour of unmasked neighbours.

    Args:
        frame: RGB frame, ``(height, width, channels)`` uint8. Not mutated.
        mask: Boolean mask with the frame's height and width.
        window: Odd side length of the square neighbourhood.
        passes: Number of fill rounds. Pixels filled in one round count as
            known in the next, so wide regions are filled from the outside in.

    Masked pixels with no unmasked neighbour inside the window are left as is.
    """

    if window < 1 or window % 2 == 0:
        raise ValueError("Window must be a positive odd number.")
    if mask.shape != frame.shape[:2]:
        raise ValueError(f"Mask shape {mask.shape} does not match frame {frame.shape[:2]}.")

    result = frame.copy()
    remaining = mask.astype(bool, copy=True)
    radius = window // 2

    for _ in range(max(1, passes)):
        if not remaining.any():
            break
        sums, counts = _neighbourhood_sums(result, ~remaining, radius)
        fillable = remaining & (counts > 0)
        if not fillable.any():
            break
        averages = np.floor(sums[fillable] / counts[fillable][:, None] + 0.5)
        result[fillable] = np.clip(averages, 0, 255).astype(np.uint8)
        remaining &= ~fillable

    return result


def _neighbourhood_sums(frame: np.ndarray, known: np.ndarray, radius: int) -> tuple[np.ndarray, np.ndarray]:
    span = (2 * radius + 1, 2 * radius + 1)
    weights = known.astype(np.float64)
    values = frame.astype(np.float64) * weights[:, :, None]

    # Unnormalised box sums; outside the frame counts as nothing known.
    counts = cv2.boxFilter(weights, -1, span, normalize=False, borderType=cv2.BORDER_CONSTANT)
    sums = cv2.boxFilter(values, -1, span, normalize=False, borderType=cv2.BORDER_CONSTANT)
    if sums.ndim == 2:
        sums = sums[:, :, None]
    return sums, counts
