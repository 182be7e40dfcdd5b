"""Shared test fixtures and fake collaborators.

Fake collaborators:
- FakeDenoiser: "denoises" by copying the chunk bytes with a prefix; can be
  told to fail, crash, write nothing, or sleep per chunk index
- FakeMerger: concatenates chunk bytes in the order given and records calls

Hypothesis Configuration:
- "ci" profile: 100 examples - default
- "nightly" profile: 1000 examples
- "debug" profile: 10 examples with verbose output

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
from hypothesis import Verbosity, settings

from app.services.denoise_pipeline.models import ChunkDescriptor

settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("nightly", max_examples=1000, deadline=None)
settings.register_profile("debug", max_examples=10, deadline=None, verbosity=Verbosity.verbose)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "ci"))


class FakeDenoiser:
    """Thread-safe stand-in for the denoiser collaborator."""

    def __init__(
        self,
        fail: Iterable[int] = (),
        crash: Iterable[int] = (),
        empty: Iterable[int] = (),
        no_output: Iterable[int] = (),
        delays: Optional[Dict[int, float]] = None,
        fail_times: Optional[Dict[int, int]] = None,
    ):
        self.fail = set(fail)
        self.crash = set(crash)
        self.empty = set(empty)
        self.no_output = set(no_output)
        self.delays = delays or {}
        # index -> how many calls fail before it starts succeeding
        self.fail_times = dict(fail_times or {})
        self.calls: List[int] = []
        self._lock = threading.Lock()

    @staticmethod
    def index_of(path: Path) -> int:
        return int(Path(path).stem.split("_")[1])

    def __call__(self, input_path: Path, output_path: Path) -> bool:
        index = self.index_of(input_path)
        with self._lock:
            self.calls.append(index)
            remaining = self.fail_times.get(index, 0)
            if remaining:
                self.fail_times[index] = remaining - 1

        time.sleep(self.delays.get(index, 0))

        if index in self.crash:
            raise KeyError(f"model state missing for chunk {index}")
        if index in self.fail or remaining:
            return False
        if index in self.no_output:
            return True
        if index in self.empty:
            Path(output_path).write_bytes(b"")
            return True

        Path(output_path).write_bytes(b"clean:" + Path(input_path).read_bytes())
        return True


class FakeMerger:
    """Concatenates chunk files in the order it is given them."""

    def __init__(self, succeed: bool = True, write_output: bool = True, raise_error: Optional[Exception] = None):
        self.succeed = succeed
        self.write_output = write_output
        self.raise_error = raise_error
        self.calls: List[List[Path]] = []

    def __call__(self, chunk_paths: List[Path], destination: Path) -> bool:
        self.calls.append(list(chunk_paths))
        if self.raise_error is not None:
            raise self.raise_error
        if not self.succeed:
            return False
        if self.write_output:
            data = b"".join(Path(p).read_bytes() for p in chunk_paths)
            Path(destination).write_bytes(data)
        return True


def make_descriptors(directory: Path, count: int, write_outputs: bool = False) -> List[ChunkDescriptor]:
    """Create ``count`` chunk input files (and optionally outputs) under directory."""
    directory.mkdir(parents=True, exist_ok=True)
    descriptors = []
    for index in range(count):
        input_path = directory / f"chunk_{index:03d}.wav"
        output_path = directory / f"chunk_{index:03d}_denoised.wav"
        input_path.write_bytes(f"audio-{index};".encode())
        if write_outputs:
            output_path.write_bytes(f"clean-{index};".encode())
        descriptors.append(ChunkDescriptor(index=index, input_path=input_path, output_path=output_path))
    return descriptors


@pytest.fixture
def chunk_dir(tmp_path):
    return tmp_path / "chunks"


@pytest.fixture
def descriptors_factory(chunk_dir):
    def factory(count: int, write_outputs: bool = False) -> List[ChunkDescriptor]:
        return make_descriptors(chunk_dir, count, write_outputs=write_outputs)
    return factory
