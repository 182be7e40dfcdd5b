"""
Chunk Task - "denoise chunk i"

Runs the denoiser collaborator on one chunk and checks that it actually
produced output. A collaborator that reports success but leaves an
empty or missing file (disk full, crashed writer) is a failure.
"""

import logging
import subprocess
from pathlib import Path
from typing import Callable

from .models import ChunkDescriptor, ChunkOutcome

logger = logging.getLogger(__name__)

Denoiser = Callable[[Path, Path], bool]


class ChunkTask:
    """
    Zero-argument callable that denoises one chunk.

    Args:
        descriptor: The chunk to process
        denoiser: Collaborator called as ``denoiser(input_path, output_path)``,
            returning True on success

    Example:
        >>> task = ChunkTask(descriptor, FFmpegDenoiser())
        >>> outcome = task()
        >>> outcome.succeeded
        True
    """

    def __init__(self, descriptor: ChunkDescriptor, denoiser: Denoiser):
        self.descriptor = descriptor
        self.denoiser = denoiser

    @property
    def index(self) -> int:
        return self.descriptor.index

    def __call__(self) -> ChunkOutcome:
        index = self.descriptor.index
        input_path = self.descriptor.input_path
        output_path = self.descriptor.output_path

        if not input_path.is_file():
            return self._fail(f"input file missing: {input_path}")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            reported = self.denoiser(input_path, output_path)
        except subprocess.TimeoutExpired as e:
            return self._fail(f"denoiser timed out after {e.timeout}s")
        except subprocess.SubprocessError as e:
            return self._fail(f"denoiser process error: {e}")
        except OSError as e:
            return self._fail(f"I/O error: {e}")

        if not reported:
            return self._fail("denoiser reported failure")

        try:
            size = output_path.stat().st_size
        except FileNotFoundError:
            return self._fail(f"denoiser reported success but wrote no output: {output_path}")
        except OSError as e:
            return self._fail(f"cannot stat output {output_path}: {e}")

        if size == 0:
            return self._fail(f"denoiser reported success but output is empty: {output_path}")

        logger.debug(f"✓ chunk {index}: {size / 1024:.0f} KB written")
        return ChunkOutcome.success(index)

    def _fail(self, reason: str) -> ChunkOutcome:
        message = f"chunk {self.descriptor.index}: {reason}"
        logger.warning(f"✗ {message}")
        return ChunkOutcome.failure(self.descriptor.index, message)

    def __repr__(self) -> str:
        return f"ChunkTask(index={self.descriptor.index}, input={self.descriptor.input_path.name})"
