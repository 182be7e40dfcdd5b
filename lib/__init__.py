"""
Denoise Pipeline - Library Modules

Shared configuration and system helpers used by the chunk pipeline
and the command-line script.

Module Structure:
================

lib/
├── __init__.py          # Package initialization
├── config.py            # Configuration and constants
├── system.py            # System utilities (CPU, memory, worker sizing)
└── audio.py             # Audio inspection utilities (ffprobe)

Dependencies:
============
- config.py: No internal dependencies (base module)
- system.py: Depends on config.py
- audio.py: Depends on config.py

Impact Analysis:
===============
- config.py: Changing constants affects all modules
- system.py: Affects default worker pool size
- audio.py: Affects splitting and input validation
"""

from .config import (
    PROJECT_ROOT,
    SUPPORTED_FORMATS,
    OUTPUTS_DIR,
    LOGS_DIR,
    DEFAULT_CHUNK_DURATION,
    DEFAULT_SAMPLE_RATE,
)

from .system import (
    get_system_resources,
    calculate_optimal_workers,
)

from .audio import (
    get_audio_duration,
    validate_audio_file,
)

__all__ = [
    # Config
    'PROJECT_ROOT',
    'SUPPORTED_FORMATS',
    'OUTPUTS_DIR',
    'LOGS_DIR',
    'DEFAULT_CHUNK_DURATION',
    'DEFAULT_SAMPLE_RATE',
    # System
    'get_system_resources',
    'calculate_optimal_workers',
    # Audio
    'get_audio_duration',
    'validate_audio_file',
]

__version__ = '1.0.0'
