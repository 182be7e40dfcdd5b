"""
Result Aggregator

Waits for every chunk handle and folds the outcomes into one
PipelineVerdict.

The verdict is a logical AND over *every* outcome. Outcomes are gathered
into a list first and reduced afterwards, so the order in which workers
finish cannot change the result and an early failure is never forgotten
because a later chunk succeeded.

Example:
    >>> aggregator = ResultAggregator(show_progress=False)
    >>> verdict = aggregator.collect(handles)
    >>> verdict.overall_success, verdict.failed_indices
    (False, (0,))
"""

import functools
import logging
import operator
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from tqdm import tqdm

from .models import ChunkOutcome, FailureKind, PipelineVerdict
from .worker_pool import ChunkHandle

logger = logging.getLogger(__name__)


def reduce_outcomes(
    outcomes: Iterable[ChunkOutcome],
    expected_indices: Optional[Iterable[int]] = None,
) -> PipelineVerdict:
    """
    Fold chunk outcomes into a PipelineVerdict.

    Args:
        outcomes: One outcome per dispatched chunk, in any order
        expected_indices: Indices that were dispatched. When given, the
            outcomes must cover exactly these indices.

    Returns:
        PipelineVerdict with per_chunk sorted by index

    Raises:
        ValueError: On a duplicated index, or an index set that does not
            match expected_indices
    """
    collected = list(outcomes)

    overall_success = functools.reduce(
        operator.and_,
        (bool(outcome.succeeded) for outcome in collected),
        True,
    )

    per_chunk = tuple(sorted(collected, key=lambda outcome: outcome.index))

    seen = [outcome.index for outcome in per_chunk]
    duplicates = sorted(index for index, count in Counter(seen).items() if count > 1)
    if duplicates:
        raise ValueError(f"Duplicate outcomes for chunks {duplicates}")

    if expected_indices is not None:
        expected = set(expected_indices)
        missing = sorted(expected - set(seen))
        unexpected = sorted(set(seen) - expected)
        if missing or unexpected:
            raise ValueError(
                f"Outcomes do not match dispatched chunks "
                f"(missing={missing}, unexpected={unexpected})"
            )

    failed_indices = tuple(outcome.index for outcome in per_chunk if not outcome.succeeded)

    return PipelineVerdict(
        overall_success=overall_success,
        per_chunk=per_chunk,
        failed_indices=failed_indices,
    )


def merge_retry(verdict: PipelineVerdict, retried: Iterable[ChunkOutcome]) -> PipelineVerdict:
    """
    Replace the outcomes of retried chunks and fold again.

    Only indices already present in the verdict may be retried.
    """
    replacements: Dict[int, ChunkOutcome] = {}
    for outcome in retried:
        if outcome.index in replacements:
            raise ValueError(f"Duplicate retry outcome for chunk {outcome.index}")
        replacements[outcome.index] = outcome

    known = {outcome.index for outcome in verdict.per_chunk}
    unknown = sorted(set(replacements) - known)
    if unknown:
        raise ValueError(f"Retry outcomes for chunks that were never dispatched: {unknown}")

    combined = [replacements.get(outcome.index, outcome) for outcome in verdict.per_chunk]
    return reduce_outcomes(combined, expected_indices=known)


class ResultAggregator:
    """
    Collects every chunk outcome and produces one PipelineVerdict.

    Args:
        chunk_timeout: Per-chunk deadline in seconds. A chunk whose run
            time exceeds it is recorded as failed (DEADLINE) once its
            handle resolves; the task itself is never interrupted.
        show_progress: Render a tqdm bar while waiting
    """

    def __init__(
        self,
        chunk_timeout: Optional[float] = None,
        show_progress: bool = True,
    ):
        if chunk_timeout is not None and chunk_timeout <= 0:
            raise ValueError(f"chunk_timeout must be positive, got {chunk_timeout}")
        self.chunk_timeout = chunk_timeout
        self.show_progress = show_progress

    def collect(self, handles: Sequence[ChunkHandle], desc: str = "Denoising") -> PipelineVerdict:
        """
        Wait on every handle and build the verdict.

        Never stops early: a failed chunk does not prevent the remaining
        handles from being resolved and their diagnostics recorded.
        """
        handles = list(handles)
        outcomes: List[ChunkOutcome] = []

        with tqdm(
            total=len(handles),
            desc=desc,
            unit="chunk",
            disable=not self.show_progress,
        ) as progress:
            for handle in handles:
                handle.add_done_callback(lambda _handle: progress.update(1))

            for handle in handles:
                outcomes.append(self._apply_deadline(handle.result()))

        verdict = reduce_outcomes(outcomes, expected_indices=[h.index for h in handles])
        self._log_verdict(verdict)
        return verdict

    def _apply_deadline(self, outcome: ChunkOutcome) -> ChunkOutcome:
        if (
            self.chunk_timeout is None
            or outcome.elapsed_seconds is None
            or outcome.elapsed_seconds <= self.chunk_timeout
        ):
            return outcome

        message = (
            f"chunk {outcome.index}: exceeded deadline of {self.chunk_timeout:g}s "
            f"(ran {outcome.elapsed_seconds:.1f}s)"
        )
        if outcome.diagnostic and not outcome.succeeded:
            message = f"{message}; {outcome.diagnostic}"

        return ChunkOutcome(
            index=outcome.index,
            succeeded=False,
            diagnostic=message,
            kind=FailureKind.DEADLINE,
            elapsed_seconds=outcome.elapsed_seconds,
        )

    @staticmethod
    def _log_verdict(verdict: PipelineVerdict) -> None:
        for outcome in verdict.per_chunk:
            if not outcome.succeeded:
                logger.error(f"✗ {outcome.diagnostic}")

        if verdict.overall_success:
            logger.info(f"✓ All {verdict.total_chunks} chunks denoised")
        else:
            logger.error(
                f"{len(verdict.failed_indices)}/{verdict.total_chunks} chunks failed: "
                f"{list(verdict.failed_indices)}"
            )
