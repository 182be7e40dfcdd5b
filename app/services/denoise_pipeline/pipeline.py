"""
Denoise Pipeline - Split, Denoise in Parallel, Merge

This module ties the pieces together for one recording:

    ┌───────────┐   ┌──────────────────────────┐   ┌────────────┐   ┌────────────┐
    │ Splitter  │──▶│ Worker pool (N threads)  │──▶│ Aggregator │──▶│ Merge gate │
    │ (ffmpeg)  │   │ ChunkTask × chunks       │   │ AND-fold   │   │ ffmpeg     │
    └───────────┘   └──────────────────────────┘   └────────────┘   └────────────┘

- Chunks are denoised concurrently and finish in any order
- The aggregator waits for all of them before deciding anything
- Only a run where every chunk succeeded is merged, in chunk order
- Failed chunks can be retried (caller-level policy, off by default)

Usage:
    pipeline = DenoisePipeline(denoiser=DeepFilterDenoiser())
    result = pipeline.process("meeting.mp3", "meeting_denoised.wav")
    if not result.success:
        print(result.report.summary())
"""

import json
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lib.config import (
    DEFAULT_CHUNK_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    KEEP_FAILED_CHUNKS,
    SCRATCH_DIR,
)
from lib.system import calculate_optimal_workers

from .aggregator import ResultAggregator, merge_retry
from .chunk_task import ChunkTask, Denoiser
from .errors import ChunkProcessingFailure, MergeFailure
from .merge_gate import GateDecision, MergeGate, Merger
from .merger import FFmpegConcatMerger
from .models import ChunkDescriptor, CleanupPolicy, PartialFailureReport, PipelineVerdict
from .splitter import AudioSplitter
from .worker_pool import ChunkWorkerPool

logger = logging.getLogger(__name__)


@dataclass
class PipelineRunResult:
    """Everything the caller needs to report on one run."""
    input_file: Optional[Path]
    output_file: Path
    verdict: PipelineVerdict
    decision: GateDecision
    attempts: int
    elapsed_seconds: float
    scratch_dir: Optional[Path] = None

    @property
    def success(self) -> bool:
        return self.verdict.overall_success and self.decision.merged

    @property
    def report(self) -> Optional[PartialFailureReport]:
        return self.decision.report

    def to_dict(self) -> Dict[str, Any]:
        return {
            'input_file': str(self.input_file) if self.input_file else None,
            'output_file': str(self.output_file),
            'success': self.success,
            'merged': self.decision.merged,
            'attempts': self.attempts,
            'elapsed_seconds': round(self.elapsed_seconds, 2),
            'scratch_dir': str(self.scratch_dir) if self.scratch_dir else None,
            'verdict': self.verdict.to_dict(),
            'report': self.report.to_dict() if self.report else None,
            'timestamp': datetime.now().isoformat(),
        }


class DenoisePipeline:
    """
    Orchestrates split → parallel denoise → aggregate → gated merge.

    Args:
        denoiser: Chunk denoiser collaborator
        merger: Merge collaborator (default: FFmpegConcatMerger)
        splitter: Splitter (default: AudioSplitter, created on first use)
        max_workers: Worker threads (default: sized from CPU count and chunk count)
        chunk_timeout: Per-chunk deadline in seconds (None = no deadline)
        max_retries: Extra attempts for failed chunks
        failure_policy: Keep or delete chunk files when chunks fail
        show_progress: Show a tqdm progress bar
        scratch_base: Parent directory for per-run scratch directories
        raise_on_failure: Raise ChunkProcessingFailure instead of returning
            a result with a report
    """

    def __init__(
        self,
        denoiser: Denoiser,
        merger: Optional[Merger] = None,
        splitter: Optional[AudioSplitter] = None,
        max_workers: Optional[int] = None,
        chunk_timeout: Optional[float] = DEFAULT_CHUNK_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        failure_policy: Optional[CleanupPolicy] = None,
        show_progress: bool = True,
        scratch_base: Optional[str] = SCRATCH_DIR,
        raise_on_failure: bool = False,
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        if failure_policy is None:
            failure_policy = CleanupPolicy.KEEP if KEEP_FAILED_CHUNKS else CleanupPolicy.DELETE

        self.denoiser = denoiser
        self.merger = merger if merger is not None else FFmpegConcatMerger()
        self._splitter = splitter
        self.max_workers = max_workers
        self.max_retries = max_retries
        self.failure_policy = failure_policy
        self.scratch_base = scratch_base
        self.raise_on_failure = raise_on_failure

        self.aggregator = ResultAggregator(chunk_timeout=chunk_timeout, show_progress=show_progress)
        self.gate = MergeGate(self.merger, failure_policy=failure_policy)

        logger.info("=" * 70)
        logger.info("🚀 DENOISE PIPELINE INITIALIZED")
        logger.info("=" * 70)
        logger.info(f"Denoiser: {type(denoiser).__name__}")
        logger.info(f"Workers: {max_workers or 'auto'}")
        logger.info(f"Chunk deadline: {f'{chunk_timeout:g}s' if chunk_timeout else 'none'}")
        logger.info(f"Retries: {max_retries}")
        logger.info(f"On chunk failure: {failure_policy.value} chunk files")
        logger.info("=" * 70)

    @property
    def splitter(self) -> AudioSplitter:
        if self._splitter is None:
            self._splitter = AudioSplitter()
        return self._splitter

    def process(self, input_file: str, output_file: str) -> PipelineRunResult:
        """
        Denoise one recording.

        Args:
            input_file: Source audio
            output_file: Merged, denoised destination

        Returns:
            PipelineRunResult; ``success`` is False when chunks failed

        Raises:
            MergeFailure: Every chunk succeeded but the merge failed
            ChunkProcessingFailure: Chunks failed and raise_on_failure is set
            FileNotFoundError / RuntimeError: Splitting failed
        """
        input_path = Path(input_file)
        scratch_dir = self._create_scratch_dir(input_path)
        keep_scratch = False

        try:
            descriptors = self.splitter.split(str(input_path), str(scratch_dir))
            if not descriptors:
                raise RuntimeError(f"No audio chunks produced from {input_path}")
            result = self.process_descriptors(descriptors, output_file, input_file=input_path)
            result.scratch_dir = scratch_dir
            keep_scratch = not result.success and result.report is not None and result.report.chunk_files_kept
            return result

        except MergeFailure:
            keep_scratch = True
            logger.error(f"Chunk files preserved in {scratch_dir}")
            raise

        except ChunkProcessingFailure as e:
            keep_scratch = e.report.chunk_files_kept
            raise

        finally:
            if keep_scratch:
                logger.info(f"Scratch directory kept: {scratch_dir}")
            elif scratch_dir.exists():
                shutil.rmtree(scratch_dir, ignore_errors=True)

    def process_descriptors(
        self,
        descriptors: Sequence[ChunkDescriptor],
        output_file: str,
        input_file: Optional[Path] = None,
    ) -> PipelineRunResult:
        """
        Denoise and merge chunks that already exist on disk.

        This is the entry point for callers with their own splitter.
        """
        start_time = time.time()
        descriptors = sorted(descriptors, key=lambda descriptor: descriptor.index)
        self._check_descriptors(descriptors)
        output_path = Path(output_file)

        workers = self.max_workers or calculate_optimal_workers(num_chunks=len(descriptors))
        logger.info(f"📋 Dispatching {len(descriptors)} chunks to {workers} workers")

        attempts = 1
        with ChunkWorkerPool(max_workers=workers) as pool:
            verdict = self._dispatch(pool, descriptors, desc="Denoising")

            while not verdict.overall_success and attempts <= self.max_retries:
                attempts += 1
                failed = set(verdict.failed_indices)
                retry = [d for d in descriptors if d.index in failed]
                logger.warning(
                    f"Retrying {len(retry)} failed chunks "
                    f"(attempt {attempts}/{self.max_retries + 1}): {list(verdict.failed_indices)}"
                )
                for descriptor in retry:
                    descriptor.output_path.unlink(missing_ok=True)
                retried = self._dispatch(pool, retry, desc=f"Retry {attempts - 1}")
                verdict = merge_retry(verdict, retried.per_chunk)

        decision = self.gate.apply(verdict, descriptors, output_path)
        elapsed = time.time() - start_time

        result = PipelineRunResult(
            input_file=input_file,
            output_file=output_path,
            verdict=verdict,
            decision=decision,
            attempts=attempts,
            elapsed_seconds=elapsed,
        )

        if result.success:
            logger.info(f"✅ Denoised {verdict.total_chunks} chunks in {elapsed:.1f}s → {output_path}")
        elif decision.report is not None:
            logger.error(f"❌ Run failed after {attempts} attempt(s):\n{decision.report.summary()}")
            if self.raise_on_failure:
                raise ChunkProcessingFailure(decision.report)

        return result

    def process_batch(self, file_pairs: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        """
        Denoise several recordings one after another.

        A failure in one file (chunk failures, merge failure, unreadable
        input) is recorded and the batch moves on to the next file.
        """
        start_time = time.time()
        logger.info(f"📋 Starting batch: {len(file_pairs)} files")

        results = []
        for job_id, (input_file, output_file) in enumerate(file_pairs, 1):
            logger.info(f"[Job {job_id}] {Path(input_file).name}")
            try:
                result = self.process(input_file, output_file)
                entry = result.to_dict()
                if not result.success and result.report is not None:
                    entry['error'] = result.report.summary()
                    entry['error_kind'] = 'chunk_failure'
            except MergeFailure as e:
                entry = {
                    'input_file': input_file,
                    'output_file': output_file,
                    'success': False,
                    'error': str(e),
                    'error_kind': 'merge_failure',
                }
            except ChunkProcessingFailure as e:
                entry = {
                    'input_file': input_file,
                    'output_file': output_file,
                    'success': False,
                    'error': str(e),
                    'error_kind': 'chunk_failure',
                    'report': e.report.to_dict(),
                }
            except (OSError, RuntimeError) as e:
                entry = {
                    'input_file': input_file,
                    'output_file': output_file,
                    'success': False,
                    'error': str(e),
                    'error_kind': 'input_error',
                }

            entry['job_id'] = job_id
            results.append(entry)
            status = "✅ COMPLETED" if entry['success'] else f"❌ FAILED: {entry.get('error_kind')}"
            logger.info(f"[Job {job_id}] {status}")

        total_time = time.time() - start_time
        succeeded = sum(1 for r in results if r['success'])
        logger.info("=" * 70)
        logger.info(f"🎉 BATCH COMPLETE: {succeeded}/{len(file_pairs)} files in {total_time/60:.1f} min")
        logger.info("=" * 70)
        return results

    def _dispatch(
        self,
        pool: ChunkWorkerPool,
        descriptors: Sequence[ChunkDescriptor],
        desc: str,
    ) -> PipelineVerdict:
        handles = [pool.submit(ChunkTask(descriptor, self.denoiser)) for descriptor in descriptors]
        return self.aggregator.collect(handles, desc=desc)

    def _create_scratch_dir(self, input_path: Path) -> Path:
        if self.scratch_base:
            base = Path(self.scratch_base)
            base.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=f"denoise_{input_path.stem}_", dir=base))
        return Path(tempfile.mkdtemp(prefix=f"denoise_{input_path.stem}_"))

    @staticmethod
    def _check_descriptors(descriptors: List[ChunkDescriptor]) -> None:
        indices = [descriptor.index for descriptor in descriptors]
        if indices != list(range(len(indices))):
            raise ValueError(f"Chunk indices must be dense and start at 0, got {indices}")

        outputs = [descriptor.output_path for descriptor in descriptors]
        inputs = [descriptor.input_path for descriptor in descriptors]
        if len(set(outputs)) != len(outputs) or set(outputs) & set(inputs):
            raise ValueError("Chunk input/output paths must be unique per chunk")


def write_report(result: PipelineRunResult, report_file: str) -> Path:
    """Save a run's verdict and report as JSON."""
    report_path = Path(report_file)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"✓ Report saved: {report_path}")
    return report_path
