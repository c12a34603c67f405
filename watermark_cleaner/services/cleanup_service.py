"""Format dispatch and the top-level watermark cleanup pipeline."""

from __future__ import annotations

import asyncio
import tempfile
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import requests
from loguru import logger

from watermark_cleaner.core.config import Settings, get_settings
from watermark_cleaner.core.context import PipelineContext
from watermark_cleaner.core.errors import PayloadTooLargeError
from watermark_cleaner.schemas.cleanup import CleanupConfig, CleanupReport, ColorMode, IntensityTier, MediaKind
from watermark_cleaner.services import document, mask as mask_refiner
from watermark_cleaner.services.chunking import ChunkSplitter
from watermark_cleaner.services.classifier import PixelClassifier
from watermark_cleaner.services.orchestrator import PASSTHROUGH_SOURCE, FrameResult, ProviderOrchestrator
from watermark_cleaner.services.providers.base import RemovalProvider
from watermark_cleaner.services.providers.registry import build_providers
from watermark_cleaner.services.scheduler import BatchScheduler, ProcessingJob
from watermark_cleaner.services.video import FFmpegMediaContainer, MediaContainer, VideoPipeline
from watermark_cleaner.utils.imaging import SUPPORTED_OUTPUT_FORMATS, decode_image, encode_image, resolve_output_format
from watermark_cleaner.utils.media import VIDEO_EXTENSIONS, sniff_media_kind

VIDEO_OUTPUT_SUFFIX = ".mp4"


@dataclass
class CleanupResult:
    data: bytes
    media_kind: MediaKind
    filename_suffix: str
    report: CleanupReport


class CleanupRun:
    """Collaborators for a single pipeline invocation.

    Nothing here outlives the run: the HTTP session, provider chain and
    cancellation token are created per call and closed afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        config: CleanupConfig,
        providers: Sequence[RemovalProvider] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self._owns_session = session is None
        self.context = PipelineContext.from_settings(settings, config.deadline_seconds, session)
        self.classifier = PixelClassifier.from_settings(settings)
        if providers is None:
            names = config.providers if config.providers is not None else settings.INPAINT_PROVIDERS
            providers = build_providers(settings, self.context.session, names)
        self.orchestrator = ProviderOrchestrator(
            self.context,
            providers,
            local_window=settings.LOCAL_INPAINT_WINDOW,
            local_passes=settings.LOCAL_INPAINT_PASSES,
        )
        self.scheduler = BatchScheduler(concurrency=config.concurrency or settings.BATCH_CONCURRENCY)
        self.color_mode = ColorMode(config.color_mode or settings.DEFAULT_COLOR_MODE)
        self.tier = IntensityTier(config.intensity or settings.DEFAULT_INTENSITY)
        self.dilation_radius = (
            config.dilation_radius if config.dilation_radius is not None else settings.MASK_DILATION_RADIUS
        )
        self.sources: dict[str, int] = {}

    def build_mask(self, frame: np.ndarray, tier: IntensityTier, color_mode: ColorMode) -> np.ndarray:
        raw = self.classifier.classify(frame, color_mode, tier)
        return mask_refiner.dilate(raw, self.dilation_radius)

    async def clean_frame(
        self,
        job: ProcessingJob,
        tier: IntensityTier | None = None,
        color_mode: ColorMode | None = None,
    ) -> FrameResult:
        """Classify, refine and inpaint one frame. ``PayloadTooLargeError`` escapes."""

        mask = job.mask
        if mask is None:
            mask = await asyncio.to_thread(
                self.build_mask,
                job.frame,
                tier or self.tier,
                color_mode or self.color_mode,
            )
        return await self.orchestrator.process(job.frame, mask)

    async def clean_unit(
        self,
        job: ProcessingJob,
        tier: IntensityTier | None = None,
        color_mode: ColorMode | None = None,
    ) -> FrameResult:
        """Like :meth:`clean_frame` for units that cannot be split any further."""

        try:
            return await self.clean_frame(job, tier, color_mode)
        except PayloadTooLargeError as exc:
            logger.warning(f"Unit {job.index} too large for remote inpainting ({exc}); using local fill.")
            mask = job.mask
            if mask is None:
                mask = await asyncio.to_thread(
                    self.build_mask,
                    job.frame,
                    tier or self.tier,
                    color_mode or self.color_mode,
                )
            return await self.orchestrator.local_fallback(job.frame, mask)

    def record(self, source: str, count: int = 1) -> None:
        self.sources[source] = self.sources.get(source, 0) + count

    def close(self) -> None:
        if self._owns_session:
            self.context.close()


class WatermarkCleanupService:
    """Detect and remove watermarks from images, PDF documents and videos."""

    def __init__(
        self,
        settings: Settings | None = None,
        container: MediaContainer | None = None,
        providers: Sequence[RemovalProvider] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.container = container or FFmpegMediaContainer(self.settings.FFMPEG_BINARY)
        self._providers = list(providers) if providers is not None else None
        self._session = session

    def start_run(self, config: CleanupConfig | None = None) -> CleanupRun:
        return CleanupRun(self.settings, config or CleanupConfig(), self._providers, self._session)

    async def clean_bytes(
        self,
        data: bytes,
        media_kind: MediaKind | str | None = None,
        filename: str | None = None,
        config: CleanupConfig | None = None,
    ) -> CleanupResult:
        """Clean ``data`` and return bytes of the same media kind plus a report."""

        config = config or CleanupConfig()
        kind = MediaKind(media_kind) if media_kind else sniff_media_kind(data, filename)
        started = time.perf_counter()
        run = self.start_run(config)
        logger.info(
            f"Cleaning {kind.value} ({len(data)} bytes) with mode={run.color_mode.value}, tier={run.tier.value}"
        )

        passthrough_ranges: list[tuple[int, int]] = []
        try:
            if kind is MediaKind.image:
                output, suffix = await self._clean_image(run, data)
                units = 1
            elif kind is MediaKind.document:
                output, units, passthrough_ranges = await self._clean_document(run, data)
                suffix = ".pdf"
            else:
                output, units = await self._clean_video_bytes(run, data, filename)
                suffix = VIDEO_OUTPUT_SUFFIX
            cancelled = run.context.token.cancelled
        finally:
            run.close()

        report = CleanupReport(
            media_kind=kind,
            units=units,
            sources=dict(run.sources),
            passthrough_ranges=passthrough_ranges,
            cancelled=cancelled,
            elapsed_seconds=round(time.perf_counter() - started, 3),
        )
        logger.info(f"Cleanup finished: {report.summary()}")
        return CleanupResult(data=output, media_kind=kind, filename_suffix=suffix, report=report)

    async def process_file(
        self,
        input_path: Path,
        output_path: Path,
        config: CleanupConfig | None = None,
        media_kind: MediaKind | str | None = None,
    ) -> tuple[Path, CleanupReport | None]:
        """Process a file on disk.

        Args:
            input_path: Path to input file
            output_path: Path for output file
            config: Per-request overrides
            media_kind: Declared media kind; sniffed when omitted

        Returns:
            The output path and the run report, or ``None`` when an existing
            output was kept.
        """

        config = config or CleanupConfig()
        if output_path.exists() and not config.overwrite:
            logger.info(f"Skipping existing file: {output_path}")
            return output_path, None

        output_path.parent.mkdir(parents=True, exist_ok=True)
        kind = MediaKind(media_kind) if media_kind else None
        if kind is None and input_path.suffix.lower() in VIDEO_EXTENSIONS:
            kind = MediaKind.video

        if kind is MediaKind.video:
            started = time.perf_counter()
            run = self.start_run(config)
            try:
                units = await self._clean_video_file(run, input_path, output_path)
                cancelled = run.context.token.cancelled
            finally:
                run.close()
            report = CleanupReport(
                media_kind=MediaKind.video,
                units=units,
                sources=dict(run.sources),
                cancelled=cancelled,
                elapsed_seconds=round(time.perf_counter() - started, 3),
            )
            return output_path, report

        data = await asyncio.to_thread(input_path.read_bytes)
        result = await self.clean_bytes(data, kind, input_path.name, config)
        await asyncio.to_thread(output_path.write_bytes, result.data)
        logger.info(f"Wrote cleaned {result.media_kind.value} to {output_path}")
        return output_path, result.report

    async def _clean_image(self, run: CleanupRun, data: bytes) -> tuple[bytes, str]:
        decoded = await asyncio.to_thread(decode_image, data)
        fmt = resolve_output_format(decoded.format, run.config.force_format)
        result = await run.clean_unit(ProcessingJob(index=0, frame=decoded.frame))
        run.record(result.source)
        output = await asyncio.to_thread(encode_image, result.frame, fmt, decoded.alpha)
        return output, SUPPORTED_OUTPUT_FORMATS[fmt]

    async def _clean_document(self, run: CleanupRun, data: bytes) -> tuple[bytes, int, list[tuple[int, int]]]:
        scale = self.settings.RASTER_SCALE
        splitter = ChunkSplitter(
            max_chunk_bytes=run.config.chunk_max_bytes or self.settings.CHUNK_MAX_BYTES,
            max_chunk_pages=run.config.chunk_max_pages or self.settings.CHUNK_MAX_PAGES,
            retry_attempts=self.settings.CHUNK_RETRY_ATTEMPTS,
        )

        # Page results survive a bisection so only unfinished pages are re-sent.
        completed: dict[int, FrameResult] = {}

        async def _process_chunk(chunk: bytes, first_page: int) -> bytes:
            frames = await asyncio.to_thread(document.rasterize, chunk, scale)
            pending = [offset for offset in range(len(frames)) if first_page + offset not in completed]
            jobs = [ProcessingJob(index=slot, frame=frames[offset]) for slot, offset in enumerate(pending)]
            # A lone page cannot be split any further, so it takes the local fill instead.
            clean = run.clean_unit if len(frames) == 1 else run.clean_frame
            outcomes = await run.scheduler.run_batch(jobs, clean)

            too_large: PayloadTooLargeError | None = None
            for offset, outcome in zip(pending, outcomes):
                if outcome.ok and outcome.value is not None:
                    completed[first_page + offset] = outcome.value
                elif isinstance(outcome.error, PayloadTooLargeError):
                    too_large = outcome.error
            if too_large is not None:
                raise too_large

            cleaned = _collect_pages(completed, frames, first_page, run)
            return await asyncio.to_thread(document.reassemble, cleaned, scale)

        output = await splitter.process_document(data, _process_chunk)
        pages = sum(end - start for start, end in splitter.passthrough_ranges)
        if pages:
            run.record(PASSTHROUGH_SOURCE, pages)
        units = await asyncio.to_thread(document.page_count, output)
        return output, units, list(splitter.passthrough_ranges)

    async def _clean_video_bytes(self, run: CleanupRun, data: bytes, filename: str | None) -> tuple[bytes, int]:
        suffix = Path(filename).suffix.lower() if filename else ""
        with tempfile.TemporaryDirectory(prefix="watermark-cleanup-") as tmp:
            workdir = Path(tmp)
            input_path = workdir / f"input{suffix or VIDEO_OUTPUT_SUFFIX}"
            output_path = workdir / f"output{VIDEO_OUTPUT_SUFFIX}"
            await asyncio.to_thread(input_path.write_bytes, data)
            units = await self._clean_video_file(run, input_path, output_path, workdir)
            output = await asyncio.to_thread(output_path.read_bytes)
        return output, units

    async def _clean_video_file(
        self,
        run: CleanupRun,
        input_path: Path,
        output_path: Path,
        workdir: Path | None = None,
    ) -> int:
        pipeline = VideoPipeline(self.container, run.scheduler, run.clean_unit, fps_cap=self.settings.VIDEO_FPS_CAP)
        report = await pipeline.process_video(input_path, output_path, run.tier, run.color_mode, workdir)
        for source, count in report.sources.items():
            run.record(source, count)
        if report.failed_frames:
            logger.warning(f"{len(report.failed_frames)} frame(s) kept their original pixels.")
        return report.frame_count


def _collect_pages(
    completed: dict[int, FrameResult], frames: list[np.ndarray], first_page: int, run: CleanupRun
) -> list[np.ndarray]:
    """Pick each page's cleaned frame, keeping the original where cleaning failed."""

    pages: list[np.ndarray] = []
    for offset, original in enumerate(frames):
        result = completed.get(first_page + offset)
        if result is None:
            pages.append(original)
            run.record(PASSTHROUGH_SOURCE)
        else:
            pages.append(result.frame)
            run.record(result.source)
    return pages
