"""
Merge Collaborator

Concatenates denoised chunks, in exactly the order given, with FFmpeg's
concat demuxer. Streams are copied, not re-encoded, and bitexact flags
keep the muxer from stamping encoder/version metadata, so merging the
same chunks twice produces byte-identical files.
"""

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List

from lib.config import MERGE_TIMEOUT

logger = logging.getLogger(__name__)


class FFmpegConcatMerger:
    """
    Merge ordered chunk files into one output.

    Example:
        >>> merger = FFmpegConcatMerger()
        >>> merger([Path("chunk_000_denoised.wav"), Path("chunk_001_denoised.wav")],
        ...        Path("meeting_denoised.wav"))
        True
    """

    def __init__(self, timeout: int = MERGE_TIMEOUT, reencode: bool = False):
        """
        Args:
            timeout: FFmpeg timeout in seconds
            reencode: Let FFmpeg pick the codec for the destination container
                instead of stream copy (needed when the destination is not WAV)
        """
        self.timeout = timeout
        self.reencode = reencode

    @staticmethod
    def write_concat_list(chunk_paths: List[Path], list_file: Path) -> None:
        """Write an FFmpeg concat demuxer list, one ``file`` line per chunk."""
        lines = []
        for path in chunk_paths:
            escaped = str(Path(path).resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        list_file.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def build_command(self, list_file: Path, destination: Path) -> List[str]:
        codec_args = [] if self.reencode else ["-c", "copy"]
        return [
            "ffmpeg",
            "-hide_banner",
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_file),
            *codec_args,
            "-fflags", "+bitexact",
            "-flags:a", "+bitexact",
            "-map_metadata", "-1",
            "-y",
            str(destination)
        ]

    def __call__(self, chunk_paths: List[Path], destination: Path) -> bool:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix=".concat_", dir=destination.parent) as work_dir:
            list_file = Path(work_dir) / "concat.txt"
            self.write_concat_list(chunk_paths, list_file)

            cmd = self.build_command(list_file, destination)
            logger.debug(f"Running: {' '.join(cmd)}")
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )

        if result.returncode != 0:
            logger.error(f"FFmpeg concat error: {result.stderr.strip()}")
            return False

        return True
