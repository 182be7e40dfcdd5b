"""
Audio Splitter

Cuts a recording into fixed-length, non-overlapping chunks and returns
the ordered ChunkDescriptor sequence the pipeline dispatches.

Strategy:
- Chunk length: 60 seconds by default (last chunk may be shorter)
- Every chunk is decoded to mono PCM WAV at 48 kHz, the rate DeepFilterNet
  expects, so the denoised chunks can be concatenated without re-encoding
- Boundaries are cut on time offsets; no sample-accurate alignment

Example timeline (150s input, 60s chunks):
    Chunk 0:   0s -  60s
    Chunk 1:  60s - 120s
    Chunk 2: 120s - 150s
"""

import json
import logging
import math
import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import List

from lib.audio import get_audio_duration
from lib.config import (
    CHUNK_INPUT_TEMPLATE,
    CHUNK_OUTPUT_TEMPLATE,
    DEFAULT_CHUNK_DURATION,
    DEFAULT_SAMPLE_RATE,
    SPLIT_TIMEOUT,
)

from .models import ChunkDescriptor

logger = logging.getLogger(__name__)


class AudioSplitter:
    """
    Splits audio into chunk files with FFmpeg.

    Example:
        >>> splitter = AudioSplitter(chunk_duration=60)
        >>> descriptors = splitter.split("meeting.mp3", "/tmp/run_1")
        >>> print(f"Created {len(descriptors)} chunks")
    """

    def __init__(
        self,
        chunk_duration: int = DEFAULT_CHUNK_DURATION,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        timeout: int = SPLIT_TIMEOUT,
    ):
        """
        Initialize splitter.

        Args:
            chunk_duration: Chunk duration in seconds
            sample_rate: Sample rate of chunk files (Hz)
            timeout: FFmpeg timeout per chunk (seconds)
        """
        if chunk_duration <= 0:
            raise ValueError(f"chunk_duration must be positive, got {chunk_duration}")

        self.chunk_duration = chunk_duration
        self.sample_rate = sample_rate
        self.timeout = timeout

        if shutil.which("ffmpeg") is None:
            raise RuntimeError("FFmpeg not found. Please install ffmpeg")

    def plan(self, total_duration: float) -> List[tuple]:
        """
        Compute (start, duration) for each chunk.

        Args:
            total_duration: Audio duration in seconds

        Returns:
            List of (start_seconds, duration_seconds), in temporal order
        """
        if total_duration <= 0:
            return []

        num_chunks = math.ceil(total_duration / self.chunk_duration)
        spans = []
        for i in range(num_chunks):
            start = i * self.chunk_duration
            end = min(total_duration, (i + 1) * self.chunk_duration)
            spans.append((start, end - start))
        return spans

    def build_command(self, input_path: Path, start: float, duration: float, chunk_file: Path) -> List[str]:
        return [
            "ffmpeg",
            "-hide_banner",
            "-ss", f"{start:.3f}",
            "-t", f"{duration:.3f}",
            "-i", str(input_path),
            "-ac", "1",
            "-ar", str(self.sample_rate),
            "-c:a", "pcm_s16le",
            "-y",
            str(chunk_file)
        ]

    def split(
        self,
        input_file: str,
        output_dir: str,
        save_metadata: bool = True,
    ) -> List[ChunkDescriptor]:
        """
        Split audio into chunk files.

        Args:
            input_file: Path to input audio file
            output_dir: Scratch directory for chunk files
            save_metadata: Whether to save chunk metadata to JSON

        Returns:
            ChunkDescriptor list with dense indices starting at 0

        Raises:
            FileNotFoundError: If input file doesn't exist
            RuntimeError: If FFmpeg processing fails
        """
        input_path = Path(input_file)
        if not input_path.exists():
            raise FileNotFoundError(f"Input file not found: {input_file}")

        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Splitting audio: {input_file}")
        start_time = datetime.now()

        total_duration = get_audio_duration(str(input_path))
        spans = self.plan(total_duration)
        logger.info(
            f"Audio duration: {total_duration:.2f}s ({total_duration/60:.1f} min) "
            f"→ {len(spans)} chunks of {self.chunk_duration}s"
        )

        descriptors = []
        for index, (start, duration) in enumerate(spans):
            chunk_file = output_path / CHUNK_INPUT_TEMPLATE.format(index=index)
            cmd = self.build_command(input_path, start, duration, chunk_file)

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout
                )
            except subprocess.TimeoutExpired:
                raise RuntimeError(f"Timeout creating chunk {index}")

            if result.returncode != 0:
                logger.error(f"FFmpeg error for chunk {index}: {result.stderr}")
                raise RuntimeError(f"Failed to create chunk {index}")

            descriptors.append(ChunkDescriptor(
                index=index,
                input_path=chunk_file,
                output_path=output_path / CHUNK_OUTPUT_TEMPLATE.format(index=index),
                start_seconds=round(start, 3),
                duration_seconds=round(duration, 3),
            ))

            logger.debug(f"✓ Chunk {index + 1}/{len(spans)}: {start:.1f}s - {start + duration:.1f}s")

        processing_time = (datetime.now() - start_time).total_seconds()

        if save_metadata:
            metadata_file = output_path / "chunking_metadata.json"
            metadata = {
                "input_file": str(input_path),
                "output_dir": str(output_path),
                "total_duration_seconds": round(total_duration, 2),
                "chunk_duration": self.chunk_duration,
                "sample_rate": self.sample_rate,
                "total_chunks": len(descriptors),
                "chunks": [
                    {
                        "index": d.index,
                        "input": d.input_path.name,
                        "output": d.output_path.name,
                        "start_time": d.start_seconds,
                        "duration": d.duration_seconds,
                    }
                    for d in descriptors
                ],
                "processing_time_seconds": round(processing_time, 2),
                "timestamp": datetime.now().isoformat(),
            }
            with open(metadata_file, 'w', encoding='utf-8') as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False)
            logger.debug(f"Metadata saved to: {metadata_file}")

        logger.info(f"✅ Split complete: {len(descriptors)} chunks in {processing_time:.1f}s")
        return descriptors
