"""Video frame pipeline: probe, split into frames, clean, re-encode with audio."""

from __future__ import annotations

import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import av
import numpy as np
from loguru import logger

from watermark_cleaner.core.errors import DecodeError, PipelineStageError
from watermark_cleaner.schemas.cleanup import ColorMode, IntensityTier
from watermark_cleaner.services.orchestrator import PASSTHROUGH_SOURCE, FrameResult
from watermark_cleaner.services.scheduler import BatchScheduler, ProcessingJob
from watermark_cleaner.utils.ffmpeg import (
    build_audio_extract_command,
    build_encode_command,
    build_frame_extract_command,
    run_ffmpeg_command,
)

FrameHandler = Callable[[ProcessingJob, IntensityTier, ColorMode], Awaitable[FrameResult]]

DEFAULT_FPS_CAP = 10.0


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    fps: float
    duration: float
    has_audio: bool


@dataclass
class VideoReport:
    source_fps: float
    target_fps: float
    frame_count: int
    has_audio: bool
    sources: dict[str, int] = field(default_factory=dict)
    failed_frames: list[int] = field(default_factory=list)


class MediaContainer(Protocol):
    async def probe(self, path: Path) -> VideoInfo: ...

    async def extract_audio(self, path: Path, workdir: Path) -> Path | None: ...

    async def extract_frames(self, path: Path, fps: float, info: VideoInfo) -> list[np.ndarray]: ...

    async def encode(
        self,
        frames: list[np.ndarray],
        fps: float,
        audio: Path | None,
        output_path: Path,
    ) -> None: ...


class FFmpegMediaContainer:
    """Container collaborator backed by PyAV probing and the ffmpeg binary."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg") -> None:
        self.ffmpeg_binary = ffmpeg_binary

    async def probe(self, path: Path) -> VideoInfo:
        try:
            with av.open(str(path)) as container:
                if not container.streams.video:
                    raise DecodeError(f"{path.name} has no video stream", stage="probe")
                stream = container.streams.video[0]
                rate = stream.average_rate or stream.guessed_rate
                fps = float(rate) if rate else 0.0
                if container.duration is not None:
                    duration = container.duration / av.time_base
                elif stream.duration is not None and stream.time_base is not None:
                    duration = float(stream.duration * stream.time_base)
                else:
                    duration = 0.0
                return VideoInfo(
                    width=stream.codec_context.width,
                    height=stream.codec_context.height,
                    fps=fps,
                    duration=duration,
                    has_audio=bool(container.streams.audio),
                )
        except (av.error.FFmpegError, OSError) as exc:
            raise DecodeError(f"unable to probe {path.name}: {exc}", stage="probe") from exc

    async def extract_audio(self, path: Path, workdir: Path) -> Path | None:
        target = workdir / "audio.mka"
        try:
            await run_ffmpeg_command(build_audio_extract_command(self.ffmpeg_binary, path, target))
        except RuntimeError as exc:
            logger.warning(f"Audio extraction failed, output will be silent: {exc}")
            return None
        if not target.exists() or target.stat().st_size == 0:
            return None
        return target

    async def extract_frames(self, path: Path, fps: float, info: VideoInfo) -> list[np.ndarray]:
        try:
            raw = await run_ffmpeg_command(build_frame_extract_command(self.ffmpeg_binary, path, fps))
        except RuntimeError as exc:
            raise DecodeError(str(exc), stage="extract") from exc

        frame_size = info.width * info.height * 3
        if frame_size == 0 or len(raw) % frame_size:
            raise DecodeError(
                f"raw stream of {len(raw)} bytes does not divide into {info.width}x{info.height} frames",
                stage="extract",
            )
        buffer = np.frombuffer(raw, dtype=np.uint8).reshape(-1, info.height, info.width, 3)
        return [frame.copy() for frame in buffer]

    async def encode(
        self,
        frames: list[np.ndarray],
        fps: float,
        audio: Path | None,
        output_path: Path,
    ) -> None:
        if not frames:
            raise PipelineStageError("encode", "no frames to encode")
        height, width = frames[0].shape[:2]
        command = build_encode_command(
            self.ffmpeg_binary, output_path, width, height, fps, audio, duration=len(frames) / fps
        )
        payload = b"".join(np.ascontiguousarray(frame, dtype=np.uint8).tobytes() for frame in frames)
        try:
            await run_ffmpeg_command(command, input_bytes=payload)
        except RuntimeError as exc:
            raise PipelineStageError("encode", str(exc)) from exc


class VideoPipeline:
    """Route every frame of a video through ``frame_handler`` and rebuild it."""

    def __init__(
        self,
        container: MediaContainer,
        scheduler: BatchScheduler,
        frame_handler: FrameHandler,
        fps_cap: float = DEFAULT_FPS_CAP,
    ) -> None:
        if fps_cap <= 0:
            raise ValueError("Frame rate cap must be positive.")
        self.container = container
        self.scheduler = scheduler
        self.frame_handler = frame_handler
        self.fps_cap = fps_cap

    def target_fps(self, source_fps: float) -> float:
        if source_fps <= 0:
            return self.fps_cap
        return min(source_fps, self.fps_cap)

    async def process_video(
        self,
        input_path: Path,
        output_path: Path,
        tier: IntensityTier,
        color_mode: ColorMode,
        workdir: Path | None = None,
    ) -> VideoReport:
        if workdir is None:
            with tempfile.TemporaryDirectory(prefix="watermark-video-") as tmp:
                return await self.process_video(input_path, output_path, tier, color_mode, Path(tmp))

        info = await self.container.probe(input_path)
        fps = self.target_fps(info.fps)
        audio = await self.container.extract_audio(input_path, workdir) if info.has_audio else None
        frames = await self.container.extract_frames(input_path, fps, info)
        if not frames:
            raise DecodeError(f"no frames decoded from {input_path.name}", stage="extract")
        logger.info(f"Extracted {len(frames)} frames at {fps:g} fps from {input_path.name}.")

        jobs = [ProcessingJob(index=i, frame=frame) for i, frame in enumerate(frames)]

        async def _handle(job: ProcessingJob) -> FrameResult:
            return await self.frame_handler(job, tier, color_mode)

        outcomes = await self.scheduler.run_batch(jobs, _handle)

        report = VideoReport(source_fps=info.fps, target_fps=fps, frame_count=len(frames), has_audio=audio is not None)
        cleaned: list[np.ndarray] = []
        for outcome, original in zip(outcomes, frames):
            if outcome.ok and outcome.value is not None:
                cleaned.append(outcome.value.frame)
                source = outcome.value.source
            else:
                cleaned.append(original)
                source = PASSTHROUGH_SOURCE
                report.failed_frames.append(outcome.index)
            report.sources[source] = report.sources.get(source, 0) + 1

        if len(cleaned) != len(frames):
            raise PipelineStageError("encode", f"expected {len(frames)} frames, have {len(cleaned)}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        await self.container.encode(cleaned, fps, audio, output_path)
        return report
