"""
Merge Gate

Decides, from the aggregated verdict, whether the denoised chunks are
merged into the final file.

- Failed verdict: the merger is not called; a PartialFailureReport naming
  every failed chunk is returned. Chunk files are kept or removed per
  CleanupPolicy.
- Successful verdict: the merger is called exactly once with the chunk
  outputs in ascending index order. On success the chunk files are
  removed; on failure MergeFailure is raised and the files stay.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .errors import MergeFailure
from .models import ChunkDescriptor, CleanupPolicy, PartialFailureReport, PipelineVerdict

logger = logging.getLogger(__name__)

Merger = Callable[[List[Path], Path], bool]


@dataclass(frozen=True)
class GateDecision:
    """Result of MergeGate.apply()."""
    merged: bool
    destination: Optional[Path] = None
    report: Optional[PartialFailureReport] = None
    chunk_files_removed: bool = False


class MergeGate:
    """
    Gates the merge collaborator on the pipeline verdict.

    Args:
        merger: Collaborator called as ``merger(ordered_paths, destination)``
        failure_policy: What to do with chunk files when chunks failed
    """

    def __init__(self, merger: Merger, failure_policy: CleanupPolicy = CleanupPolicy.KEEP):
        self.merger = merger
        self.failure_policy = failure_policy

    def apply(
        self,
        verdict: PipelineVerdict,
        descriptors: Sequence[ChunkDescriptor],
        destination: Path,
    ) -> GateDecision:
        destination = Path(destination)
        ordered = sorted(descriptors, key=lambda descriptor: descriptor.index)
        self._check_coverage(verdict, ordered)

        if not verdict.overall_success:
            return self._reject(verdict, ordered)

        if not ordered:
            logger.warning("No chunks to merge")
            return GateDecision(merged=False, destination=None)

        chunk_paths = [descriptor.output_path for descriptor in ordered]
        self._merge(chunk_paths, destination)

        removed = False
        try:
            size_mb = destination.stat().st_size / (1024 * 1024)
            logger.info(f"✓ Merged {len(chunk_paths)} chunks → {destination} ({size_mb:.1f} MB)")
        finally:
            removed = remove_chunk_files(ordered)

        return GateDecision(merged=True, destination=destination, chunk_files_removed=removed)

    def _reject(
        self,
        verdict: PipelineVerdict,
        ordered: List[ChunkDescriptor],
    ) -> GateDecision:
        keep = self.failure_policy == CleanupPolicy.KEEP
        removed = False
        if not keep:
            removed = remove_chunk_files(ordered)

        report = PartialFailureReport.from_verdict(verdict, chunk_files_kept=keep)
        logger.error(f"Merge skipped: {report.summary()}")
        if keep and ordered:
            logger.info(f"Chunk files kept for inspection in {ordered[0].input_path.parent}")

        return GateDecision(merged=False, report=report, chunk_files_removed=removed)

    def _merge(self, chunk_paths: List[Path], destination: Path) -> None:
        logger.info(f"Merging {len(chunk_paths)} chunks in order → {destination}")
        try:
            ok = self.merger(chunk_paths, destination)
        except Exception as e:
            raise MergeFailure(
                f"Merge failed: {type(e).__name__}: {e}",
                destination=destination,
                chunk_paths=chunk_paths,
            ) from e

        if not ok:
            raise MergeFailure(
                "Merge failed: merger reported failure",
                destination=destination,
                chunk_paths=chunk_paths,
            )

        if not destination.is_file() or destination.stat().st_size == 0:
            raise MergeFailure(
                f"Merge failed: merger reported success but {destination} is missing or empty",
                destination=destination,
                chunk_paths=chunk_paths,
            )

    @staticmethod
    def _check_coverage(verdict: PipelineVerdict, ordered: List[ChunkDescriptor]) -> None:
        descriptor_indices = [descriptor.index for descriptor in ordered]
        verdict_indices = [outcome.index for outcome in verdict.per_chunk]
        if descriptor_indices != verdict_indices:
            raise ValueError(
                f"Chunk descriptors {descriptor_indices} do not match "
                f"verdict outcomes {verdict_indices}"
            )


def remove_chunk_files(descriptors: Sequence[ChunkDescriptor]) -> bool:
    """Delete chunk input and output files. Returns True if nothing was left behind."""
    clean = True
    for descriptor in descriptors:
        for path in (descriptor.input_path, descriptor.output_path):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                clean = False
                logger.warning(f"Could not remove {path}: {e}")
    return clean
