"""Split oversized documents into page chunks and bisect on payload-too-large."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from watermark_cleaner.core.errors import (
    DecodeError,
    FatalProviderError,
    PayloadTooLargeError,
    ReassemblyError,
    TransientProviderError,
)
from watermark_cleaner.services.document import extract_pages, merge_documents, page_count

# Called with the chunk's PDF bytes and the index of its first page in the source.
ChunkProcessor = Callable[[bytes, int], Awaitable[bytes]]


@dataclass(frozen=True)
class ChunkTask:
    """Pages ``[start, end)`` of ``source`` at a given bisection depth."""

    start: int
    end: int
    source: bytes
    depth: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end:
            raise ValueError(f"Invalid chunk range [{self.start}, {self.end}).")

    @property
    def size(self) -> int:
        return self.end - self.start

    def split(self) -> tuple["ChunkTask", "ChunkTask"]:
        if self.size < 2:
            raise ValueError("A single-page chunk cannot be split.")
        middle = self.start + self.size // 2
        return (
            ChunkTask(self.start, middle, self.source, self.depth + 1),
            ChunkTask(middle, self.end, self.source, self.depth + 1),
        )


class ChunkSplitter:
    """Feed a document to ``process_chunk`` in budget-sized page ranges.

    Attributes populated by :meth:`process_document`:
        passthrough_ranges: page ranges returned unprocessed.
        max_depth: deepest bisection level reached.
        chunk_calls: number of calls made to ``process_chunk``.
    """

    def __init__(
        self,
        max_chunk_bytes: int,
        max_chunk_pages: int | None = None,
        retry_attempts: int = 2,
    ) -> None:
        if max_chunk_bytes < 1:
            raise ValueError("Chunk byte budget must be positive.")
        self.max_chunk_bytes = max_chunk_bytes
        self.max_chunk_pages = max_chunk_pages
        self.retry_attempts = max(1, retry_attempts)
        self.passthrough_ranges: list[tuple[int, int]] = []
        self.max_depth = 0
        self.chunk_calls = 0

    def plan(self, doc_size: int, pages: int) -> list[tuple[int, int]]:
        """Partition ``[0, pages)`` using the average per-page byte cost."""

        if pages < 1:
            return []
        per_chunk = max(1, self.max_chunk_bytes * pages // max(doc_size, 1))
        if self.max_chunk_pages:
            per_chunk = min(per_chunk, self.max_chunk_pages)
        per_chunk = min(per_chunk, pages)
        return [(start, min(start + per_chunk, pages)) for start in range(0, pages, per_chunk)]

    async def process_document(self, doc: bytes, process_chunk: ChunkProcessor) -> bytes:
        self.passthrough_ranges = []
        self.max_depth = 0
        self.chunk_calls = 0

        total = await asyncio.to_thread(page_count, doc)
        if total == 0:
            raise DecodeError("document has no pages", stage="rasterize")

        ranges = self.plan(len(doc), total)
        logger.info(f"Processing {total} pages in {len(ranges)} chunk(s).")

        parts: list[bytes] = []
        for start, end in ranges:
            parts.extend(await self._process(ChunkTask(start, end, doc), process_chunk))

        merged = await asyncio.to_thread(merge_documents, parts)
        merged_pages = await asyncio.to_thread(page_count, merged)
        if merged_pages != total:
            raise ReassemblyError(f"document had {total} pages, reassembled {merged_pages}")
        return merged

    async def _process(self, task: ChunkTask, process_chunk: ChunkProcessor) -> list[bytes]:
        self.max_depth = max(self.max_depth, task.depth)
        original = await asyncio.to_thread(extract_pages, task.source, task.start, task.end)

        for attempt in range(1, self.retry_attempts + 1):
            self.chunk_calls += 1
            try:
                processed = await process_chunk(original, task.start)
            except PayloadTooLargeError as exc:
                if task.size == 1:
                    logger.warning(f"Page {task.start} too large even on its own ({exc}); passing it through.")
                    self.passthrough_ranges.append((task.start, task.end))
                    return [original]
                left, right = task.split()
                logger.info(
                    f"Pages [{task.start}, {task.end}) too large; splitting into "
                    f"[{left.start}, {left.end}) and [{right.start}, {right.end})."
                )
                return [
                    *await self._process(left, process_chunk),
                    *await self._process(right, process_chunk),
                ]
            except (TransientProviderError, FatalProviderError) as exc:
                logger.warning(
                    f"Chunk [{task.start}, {task.end}) failed (attempt {attempt}/{self.retry_attempts}): {exc}"
                )
                continue

            processed_pages = await asyncio.to_thread(page_count, processed)
            if processed_pages != task.size:
                raise ReassemblyError(
                    f"chunk [{task.start}, {task.end}) returned {processed_pages} pages, expected {task.size}"
                )
            return [processed]

        logger.warning(f"Passing chunk [{task.start}, {task.end}) through unprocessed.")
        self.passthrough_ranges.append((task.start, task.end))
        return [original]


def depth_bound(pages: int) -> int:
    """Upper bound on bisection depth for a document of ``pages`` pages."""

    return math.ceil(math.log2(pages)) if pages > 1 else 0
