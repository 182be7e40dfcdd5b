"""
Pipeline error kinds.

Chunk-level problems never surface as exceptions from the workers; they
are recorded as failed ChunkOutcome values (see FailureKind). The classes
here are what the caller layer raises once a run has a verdict.
"""

from pathlib import Path
from typing import List, Optional

from .models import PartialFailureReport


class DenoisePipelineError(Exception):
    """Base class for pipeline errors."""


class ChunkProcessingFailure(DenoisePipelineError):
    """One or more chunks failed; carries the report naming every one of them."""

    def __init__(self, report: PartialFailureReport):
        self.report = report
        super().__init__(report.summary())


class MergeFailure(DenoisePipelineError):
    """The merge collaborator failed after every chunk succeeded."""

    def __init__(
        self,
        message: str,
        destination: Optional[Path] = None,
        chunk_paths: Optional[List[Path]] = None,
    ):
        self.destination = destination
        self.chunk_paths = list(chunk_paths or [])
        super().__init__(message)
