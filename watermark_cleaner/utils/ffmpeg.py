"""FFmpeg helper utilities."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


def build_audio_extract_command(binary: str, source: Path, target: Path) -> list[str]:
    """Copy the first audio stream out of ``source`` without re-encoding."""

    return [
        binary,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(source),
        "-vn",
        "-map",
        "0:a:0?",
        "-c:a",
        "copy",
        str(target),
    ]


def build_frame_extract_command(binary: str, source: Path, fps: float) -> list[str]:
    """Decode ``source`` to raw RGB24 frames on stdout at ``fps``."""

    return [
        binary,
        "-hide_banner",
        "-loglevel",
        "error",
        "-noautorotate",
        "-i",
        str(source),
        "-vf",
        f"fps={fps:g}",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgb24",
        "-",
    ]


def build_encode_command(
    binary: str,
    target: Path,
    width: int,
    height: int,
    fps: float,
    audio: Path | None = None,
    duration: float | None = None,
) -> list[str]:
    """Encode raw RGB24 frames from stdin to H.264, muxing ``audio`` when given.

    The output runs for ``duration`` seconds, the length of the frame sequence.
    Shorter audio is padded with silence and longer audio is cut.
    """

    command = [
        binary,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgb24",
        "-s",
        f"{width}x{height}",
        "-r",
        f"{fps:g}",
        "-i",
        "-",
    ]
    if audio is not None:
        command += ["-i", str(audio), "-map", "0:v:0", "-map", "1:a:0?", "-c:a", "aac"]
        if duration is not None:
            command += ["-af", "apad", "-t", f"{duration:.6f}"]
    command += [
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-movflags",
        "+faststart",
        str(target),
    ]
    return command


async def run_ffmpeg_command(command: Sequence[str], input_bytes: bytes | None = None) -> bytes:
    """Execute FFmpeg asynchronously and return whatever it wrote to stdout."""

    logger.info("Running FFmpeg command: %s", " ".join(command))
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input_bytes is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(f"ffmpeg binary not found: {command[0]}") from exc

    stdout, stderr = await process.communicate(input_bytes)
    if process.returncode != 0:
        logger.error("FFmpeg failed with exit code %s", process.returncode)
        raise RuntimeError(
            f"ffmpeg exited with code {process.returncode}: {stderr.decode('utf-8', errors='ignore')}"
        )
    return stdout
