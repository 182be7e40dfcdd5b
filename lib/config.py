"""
Configuration Module - lib/config.py

Central configuration for the Denoise Pipeline.
All constants, paths, and default settings are defined here.

Impact Analysis:
===============
- PROJECT_ROOT: Used by all modules for path resolution
- SCRATCH_DIR: Where per-run chunk directories are created
- OUTPUTS_DIR, LOGS_DIR: Used by scripts/denoise_pipeline.py
- DEFAULT_CHUNK_DURATION, DEFAULT_SAMPLE_RATE: Used by the splitter
- DEFAULT_BACKEND, DEEP_FILTER_BIN: Used to build the denoiser collaborator
- KEEP_FAILED_CHUNKS: Cleanup policy when a run has failed chunks
- DEFAULT_CHUNK_TIMEOUT, DEFAULT_MAX_RETRIES: Caller-level policies

Dependencies:
============
- None (base module)

Used By:
========
- lib/system.py
- lib/audio.py
- app/services/denoise_pipeline/*.py
- scripts/denoise_pipeline.py

Configuration Override:
=====================
Environment variables can override defaults:
- DENOISE_SCRATCH_DIR: Override scratch directory (default: system temp dir)
- DENOISE_OUTPUTS_DIR: Override outputs directory
- DENOISE_LOGS_DIR: Override logs directory
- DENOISE_CHUNK_DURATION: Override chunk duration (seconds)
- DENOISE_SAMPLE_RATE: Override chunk sample rate (Hz)
- DENOISE_BACKEND: 'deepfilter' or 'ffmpeg'
- DENOISE_DEEP_FILTER_BIN: Path or name of the deep-filter executable
- DENOISE_KEEP_FAILED_CHUNKS: '1' keeps chunk files of a failed run, '0' deletes them
- DENOISE_CHUNK_TIMEOUT: Per-chunk deadline in seconds (unset = no deadline)
- DENOISE_MAX_RETRIES: Re-dispatch attempts for failed chunks
"""

import os
from pathlib import Path
from typing import Optional

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root is determined dynamically from this file's location
PROJECT_ROOT = Path(__file__).parent.parent

# Empty means "let tempfile pick"
SCRATCH_DIR = os.environ.get('DENOISE_SCRATCH_DIR') or None

OUTPUTS_DIR = Path(os.environ.get(
    'DENOISE_OUTPUTS_DIR',
    str(PROJECT_ROOT / "data" / "outputs")
))

LOGS_DIR = Path(os.environ.get(
    'DENOISE_LOGS_DIR',
    str(PROJECT_ROOT / "logs")
))

# =============================================================================
# FILE FORMATS
# =============================================================================

# Input formats accepted by the splitter (anything FFmpeg can decode works,
# this list is what the CLI validates against)
SUPPORTED_FORMATS = ['.wav', '.mp3', '.m4a', '.flac', '.ogg', '.webm', '.aac']

# Chunk naming inside the scratch directory
CHUNK_INPUT_TEMPLATE = "chunk_{index:03d}.wav"
CHUNK_OUTPUT_TEMPLATE = "chunk_{index:03d}_denoised.wav"

# =============================================================================
# CHUNKING DEFAULTS
# =============================================================================

DEFAULT_CHUNK_DURATION = int(os.environ.get(
    'DENOISE_CHUNK_DURATION', '60'
))

# DeepFilterNet only operates on 48 kHz audio
DEFAULT_SAMPLE_RATE = int(os.environ.get(
    'DENOISE_SAMPLE_RATE', '48000'
))

# =============================================================================
# DENOISER CONFIGURATION
# =============================================================================

DENOISER_BACKENDS = ['deepfilter', 'ffmpeg']

DEFAULT_BACKEND = os.environ.get('DENOISE_BACKEND', 'deepfilter')

DEEP_FILTER_BIN = os.environ.get('DENOISE_DEEP_FILTER_BIN', 'deep-filter')

# Timeouts for external tools (seconds)
DENOISER_TIMEOUT = 600
MERGE_TIMEOUT = 3600
SPLIT_TIMEOUT = 120

# =============================================================================
# PIPELINE POLICY
# =============================================================================

KEEP_FAILED_CHUNKS = os.environ.get('DENOISE_KEEP_FAILED_CHUNKS', '1') != '0'


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == '':
        return None
    return float(value)


DEFAULT_CHUNK_TIMEOUT = _optional_float(os.environ.get('DENOISE_CHUNK_TIMEOUT'))

DEFAULT_MAX_RETRIES = int(os.environ.get('DENOISE_MAX_RETRIES', '0'))

# =============================================================================
# WORKER CONFIGURATION
# =============================================================================

# Use 80% of available CPU cores for chunk workers
CPU_USAGE_RATIO = 0.8

# Hard ceiling on chunk workers regardless of core count
MAX_WORKERS = 16

# Version info
APP_VERSION = "1.0.0"
APP_NAME = "Denoise Pipeline"


def ensure_directories():
    """Create output and log directories if they don't exist."""
    for directory in [OUTPUTS_DIR, LOGS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
