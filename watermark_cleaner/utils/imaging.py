"""Conversions between encoded image bytes and RGB frames."""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from watermark_cleaner.core.errors import DecodeError

SUPPORTED_OUTPUT_FORMATS = {"PNG": ".png", "JPEG": ".jpg", "WEBP": ".webp"}


@dataclass(frozen=True)
class DecodedImage:
    frame: np.ndarray
    alpha: np.ndarray | None
    format: str | None


def decode_image(data: bytes) -> DecodedImage:
    """Decode image bytes into an RGB frame, keeping any alpha plane aside."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            source_format = image.format
            alpha = None
            if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
                rgba = image.convert("RGBA")
                alpha = np.array(rgba)[:, :, 3].copy()
                rgb = rgba.convert("RGB")
            else:
                rgb = image.convert("RGB")
            frame = np.array(rgb, dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"unable to decode image: {exc}") from exc

    return DecodedImage(frame=frame, alpha=alpha, format=source_format)


def encode_image(frame: np.ndarray, fmt: str = "PNG", alpha: np.ndarray | None = None) -> bytes:
    """Encode an RGB frame, re-attaching ``alpha`` when the format supports it."""

    fmt = fmt.upper()
    image = Image.fromarray(frame)
    if alpha is not None and fmt in ("PNG", "WEBP"):
        image.putalpha(Image.fromarray(alpha))

    buffer = io.BytesIO()
    save_kwargs: dict[str, object] = {}
    if fmt == "JPEG":
        save_kwargs["quality"] = 95
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


def frame_to_png(frame: np.ndarray) -> bytes:
    return encode_image(frame, "PNG")


def mask_to_png(mask: np.ndarray) -> bytes:
    """Encode a boolean mask as a single-channel PNG (255 marks removal)."""

    image = Image.fromarray(mask.astype(np.uint8) * 255)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def decode_result(data: bytes, size: tuple[int, int]) -> np.ndarray:
    """Decode provider output and bring it back to ``size`` (width, height)."""

    decoded = decode_image(data).frame
    height, width = decoded.shape[:2]
    if (width, height) != size:
        resized = Image.fromarray(decoded).resize(size, Image.Resampling.LANCZOS)
        decoded = np.array(resized, dtype=np.uint8)
    return decoded


def resolve_output_format(source_format: str | None, force_format: str | None = None) -> str:
    """Pick the encoder for a cleaned image, defaulting to PNG."""

    if force_format:
        candidate = force_format.upper()
        if candidate == "JPG":
            candidate = "JPEG"
        if candidate not in SUPPORTED_OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format '{force_format}'.")
        return candidate
    if source_format and source_format.upper() in SUPPORTED_OUTPUT_FORMATS:
        return source_format.upper()
    return "PNG"
