"""PDF rasterization, page slicing and reassembly on top of PyMuPDF."""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import contextmanager
from typing import Iterator

import fitz  # PyMuPDF
import numpy as np

from watermark_cleaner.core.errors import DecodeError, ReassemblyError
from watermark_cleaner.utils.imaging import frame_to_png

DEFAULT_SCALE = 2.0


@contextmanager
def _open(doc: bytes) -> Iterator[fitz.Document]:
    try:
        pdf = fitz.open(stream=doc, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as exc:
        raise DecodeError(f"unable to open document: {exc}", stage="rasterize") from exc
    try:
        if pdf.needs_pass:
            raise DecodeError("document is password protected", stage="rasterize")
        yield pdf
    finally:
        pdf.close()


def page_count(doc: bytes) -> int:
    with _open(doc) as pdf:
        return pdf.page_count


def rasterize(doc: bytes, scale: float = DEFAULT_SCALE) -> list[np.ndarray]:
    """Render every page to an RGB frame at ``scale`` times 72 dpi."""

    frames: list[np.ndarray] = []
    matrix = fitz.Matrix(scale, scale)
    with _open(doc) as pdf:
        for page in pdf:
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            samples = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
            if pix.n == 1:
                samples = np.repeat(samples, 3, axis=2)
            frames.append(np.ascontiguousarray(samples[:, :, :3]))
    return frames


def reassemble(frames: Sequence[np.ndarray], scale: float = DEFAULT_SCALE) -> bytes:
    """Build a PDF with one page per frame, sized back to page coordinates."""

    if not frames:
        raise ReassemblyError("no frames to assemble")

    out = fitz.open()
    try:
        for frame in frames:
            height, width = frame.shape[:2]
            page = out.new_page(width=width / scale, height=height / scale)
            page.insert_image(page.rect, stream=frame_to_png(frame), keep_proportion=False)
        if out.page_count != len(frames):
            raise ReassemblyError(f"expected {len(frames)} pages, built {out.page_count}")
        return out.tobytes(garbage=3, deflate=True)
    finally:
        out.close()


def extract_pages(doc: bytes, start: int, end: int) -> bytes:
    """Return a standalone PDF holding pages ``[start, end)``."""

    with _open(doc) as pdf:
        if not 0 <= start < end <= pdf.page_count:
            raise ValueError(f"Page range [{start}, {end}) outside document of {pdf.page_count} pages.")
        out = fitz.open()
        try:
            out.insert_pdf(pdf, from_page=start, to_page=end - 1)
            return out.tobytes(garbage=3, deflate=True)
        finally:
            out.close()


def merge_documents(parts: Sequence[bytes]) -> bytes:
    """Concatenate PDFs in order."""

    if not parts:
        raise ReassemblyError("no document parts to merge")

    out = fitz.open()
    try:
        for part in parts:
            with _open(part) as pdf:
                out.insert_pdf(pdf)
        return out.tobytes(garbage=3, deflate=True)
    finally:
        out.close()
