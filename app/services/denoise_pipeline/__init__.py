"""
Denoise Pipeline - Parallel Chunk Denoising + Ordered Merge

Architecture:
- Splits a long recording into fixed-length chunks (FFmpeg)
- Denoises the chunks concurrently on a bounded thread pool
- Folds every chunk outcome into one verdict (logical AND, order-independent)
- Merges the denoised chunks in temporal order only if every chunk succeeded

Pipeline Flow:
    [Split] ─> [Chunk 0] ─┐
               [Chunk 1] ─┤
               [Chunk 2] ─┼─> [Aggregate] ─> [Merge gate] ─> output.wav
               [Chunk N] ─┘                        └─> partial-failure report

Components:
- ChunkWorkerPool: fixed-size worker threads, one handle per chunk
- ChunkTask: runs the denoiser on one chunk and checks its output
- ResultAggregator: waits for all chunks and builds the PipelineVerdict
- MergeGate: merges in index order or reports every failed chunk
- DenoisePipeline: ties the above to the splitter, retries and cleanup
"""

from .models import (
    ChunkDescriptor,
    ChunkOutcome,
    CleanupPolicy,
    FailureKind,
    PartialFailureReport,
    PipelineVerdict,
)
from .errors import ChunkProcessingFailure, DenoisePipelineError, MergeFailure
from .worker_pool import ChunkHandle, ChunkWorkerPool
from .chunk_task import ChunkTask
from .aggregator import ResultAggregator, merge_retry, reduce_outcomes
from .merge_gate import GateDecision, MergeGate
from .denoisers import DeepFilterDenoiser, FFmpegDenoiser, create_denoiser
from .merger import FFmpegConcatMerger
from .splitter import AudioSplitter
from .pipeline import DenoisePipeline, PipelineRunResult, write_report

__all__ = [
    'ChunkDescriptor',
    'ChunkOutcome',
    'CleanupPolicy',
    'FailureKind',
    'PartialFailureReport',
    'PipelineVerdict',
    'DenoisePipelineError',
    'ChunkProcessingFailure',
    'MergeFailure',
    'ChunkHandle',
    'ChunkWorkerPool',
    'ChunkTask',
    'ResultAggregator',
    'merge_retry',
    'reduce_outcomes',
    'GateDecision',
    'MergeGate',
    'DeepFilterDenoiser',
    'FFmpegDenoiser',
    'create_denoiser',
    'FFmpegConcatMerger',
    'AudioSplitter',
    'DenoisePipeline',
    'PipelineRunResult',
    'write_report',
]
