"""Test doubles and builders shared by the test modules."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Iterable

import fitz
import numpy as np
import requests

from watermark_cleaner.services.providers.base import ProviderOutcome, ProviderResult, RemovalProvider
from watermark_cleaner.services.video import VideoInfo
from watermark_cleaner.utils.imaging import frame_to_png


class FakeSession:
    """Stands in for ``requests.Session``; replays queued responses or exceptions."""

    def __init__(self, responses: Iterable[Any] = ()) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def close(self) -> None:
        self.closed = True


def make_response(
    status: int = 200,
    content: bytes = b"",
    json_body: Any = None,
    content_type: str | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    response._content_consumed = True
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["content-type"] = "application/json"
    else:
        response._content = content
        response.headers["content-type"] = content_type or "image/png"
    return response


class ScriptedProvider(RemovalProvider):
    """Provider returning a fixed sequence of results; the last one repeats."""

    def __init__(self, name: str, script: list[ProviderResult], delay: float = 0.0) -> None:
        super().__init__(session=FakeSession())
        self.name = name
        self.script = script
        self.delay = delay
        self.calls = 0

    async def remove(self, image: bytes, mask: bytes | None = None) -> ProviderResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.script[min(self.calls, len(self.script)) - 1]

    async def _invoke(self, image: bytes, mask: bytes | None) -> Any:
        raise NotImplementedError


def outcome(kind: ProviderOutcome, provider: str = "scripted", data: bytes | None = None) -> ProviderResult:
    return ProviderResult(kind, provider, data=data, reason=None if data else kind.value)


def solid_png(color: tuple[int, int, int], size: tuple[int, int] = (16, 16)) -> bytes:
    width, height = size
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = color
    return frame_to_png(frame)


def make_pdf(pages: int, size: tuple[float, float] = (120, 80), gray_box: bool = False) -> bytes:
    """PDF whose page ``i`` carries the text ``page-i``."""

    doc = fitz.open()
    for index in range(pages):
        page = doc.new_page(width=size[0], height=size[1])
        page.insert_text((10, 20), f"page-{index}", fontsize=8)
        if gray_box:
            shade = (0.78, 0.78, 0.78)
            page.draw_rect(fitz.Rect(10, 40, 100, 50), color=shade, fill=shade)
    data = doc.tobytes()
    doc.close()
    return data


def page_labels(doc: bytes) -> list[str]:
    with fitz.open(stream=doc, filetype="pdf") as pdf:
        return [page.get_text().strip() for page in pdf]


class FakeContainer:
    """Media container that fabricates uniform frames and records the encode call."""

    def __init__(self, fps: float = 30.0, duration: float = 10.0, has_audio: bool = True) -> None:
        self.info = VideoInfo(width=8, height=6, fps=fps, duration=duration, has_audio=has_audio)
        self.extracted_at: float | None = None
        self.audio_requested = False
        self.encoded: dict = {}

    async def probe(self, path: Path) -> VideoInfo:
        return self.info

    async def extract_audio(self, path: Path, workdir: Path) -> Path | None:
        self.audio_requested = True
        audio = workdir / "audio.mka"
        audio.write_bytes(b"audio")
        return audio

    async def extract_frames(self, path: Path, fps: float, info: VideoInfo) -> list[np.ndarray]:
        self.extracted_at = fps
        count = int(round(info.duration * fps))
        return [np.full((info.height, info.width, 3), i % 256, dtype=np.uint8) for i in range(count)]

    async def encode(self, frames, fps, audio, output_path: Path) -> None:
        self.encoded = {"frames": frames, "fps": fps, "audio": audio}
        output_path.write_bytes(b"fake-mp4")
