"""
Chunk Pipeline Data Model

Records passed between the splitter, the chunk workers, the aggregator
and the merge gate. All records are frozen: a descriptor is created once
by the splitter, an outcome once by the worker that ran the chunk, and a
verdict once by the aggregator.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


class FailureKind(str, Enum):
    """Why a chunk outcome is a failure."""
    PROCESSING = "processing"   # denoiser error, bad input, missing/empty output
    POOL_FAULT = "pool_fault"   # unexpected exception inside the task
    DEADLINE = "deadline"       # ran longer than the caller's per-chunk deadline


class CleanupPolicy(str, Enum):
    """What to do with chunk files when a run has failed chunks."""
    KEEP = "keep"
    DELETE = "delete"


@dataclass(frozen=True)
class ChunkDescriptor:
    """One chunk of the source recording. ``index`` defines temporal order."""
    index: int
    input_path: Path
    output_path: Path
    start_seconds: Optional[float] = None
    duration_seconds: Optional[float] = None

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Chunk index must be >= 0, got {self.index}")
        object.__setattr__(self, 'input_path', Path(self.input_path))
        object.__setattr__(self, 'output_path', Path(self.output_path))


@dataclass(frozen=True)
class ChunkOutcome:
    """Success/failure result of processing one chunk."""
    index: int
    succeeded: bool
    diagnostic: Optional[str] = None
    kind: Optional[FailureKind] = None
    elapsed_seconds: Optional[float] = None

    @classmethod
    def success(cls, index: int, diagnostic: Optional[str] = None) -> 'ChunkOutcome':
        return cls(index=index, succeeded=True, diagnostic=diagnostic)

    @classmethod
    def failure(
        cls,
        index: int,
        diagnostic: str,
        kind: FailureKind = FailureKind.PROCESSING,
    ) -> 'ChunkOutcome':
        return cls(index=index, succeeded=False, diagnostic=diagnostic, kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'succeeded': self.succeeded,
            'diagnostic': self.diagnostic,
            'kind': self.kind.value if self.kind else None,
            'elapsed_seconds': (
                round(self.elapsed_seconds, 3) if self.elapsed_seconds is not None else None
            ),
        }


@dataclass(frozen=True)
class PipelineVerdict:
    """
    Pipeline-wide conclusion derived from every chunk outcome.

    Built by ``aggregator.reduce_outcomes``; ``per_chunk`` is sorted by
    index and ``failed_indices`` is ascending, independent of the order in
    which the workers finished.
    """
    overall_success: bool
    per_chunk: Tuple[ChunkOutcome, ...] = field(default_factory=tuple)
    failed_indices: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def total_chunks(self) -> int:
        return len(self.per_chunk)

    @property
    def successful_chunks(self) -> int:
        return sum(1 for outcome in self.per_chunk if outcome.succeeded)

    @property
    def success_rate(self) -> float:
        if not self.per_chunk:
            return 100.0
        return self.successful_chunks / self.total_chunks * 100

    @property
    def diagnostics(self) -> Dict[int, str]:
        """Diagnostic message for every failed chunk, keyed by index."""
        return {
            outcome.index: outcome.diagnostic or "failed without diagnostic"
            for outcome in self.per_chunk
            if not outcome.succeeded
        }

    def outcome(self, index: int) -> ChunkOutcome:
        for outcome in self.per_chunk:
            if outcome.index == index:
                return outcome
        raise KeyError(index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_success': self.overall_success,
            'total_chunks': self.total_chunks,
            'successful_chunks': self.successful_chunks,
            'success_rate': round(self.success_rate, 1),
            'failed_indices': list(self.failed_indices),
            'chunks': [outcome.to_dict() for outcome in self.per_chunk],
        }


@dataclass(frozen=True)
class PartialFailureReport:
    """What the merge gate hands back instead of merging."""
    failed_indices: Tuple[int, ...]
    diagnostics: Dict[int, str]
    total_chunks: int
    chunk_files_kept: bool

    @classmethod
    def from_verdict(cls, verdict: PipelineVerdict, chunk_files_kept: bool) -> 'PartialFailureReport':
        return cls(
            failed_indices=verdict.failed_indices,
            diagnostics=verdict.diagnostics,
            total_chunks=verdict.total_chunks,
            chunk_files_kept=chunk_files_kept,
        )

    def summary(self) -> str:
        lines = [
            f"{len(self.failed_indices)}/{self.total_chunks} chunks failed:"
        ]
        for index in self.failed_indices:
            lines.append(f"  chunk {index}: {self.diagnostics.get(index, 'unknown error')}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'failed_indices': list(self.failed_indices),
            'diagnostics': {str(index): message for index, message in self.diagnostics.items()},
            'total_chunks': self.total_chunks,
            'chunk_files_kept': self.chunk_files_kept,
        }
