"""
System Utilities Module - lib/system.py

Functions for system resource detection and worker calculation.

Impact Analysis:
===============
- get_system_resources(): Used for worker sizing and the startup banner
- calculate_optimal_workers(): Default size of the chunk worker pool

Dependencies:
============
- lib/config.py (CPU_USAGE_RATIO, MAX_WORKERS)

Used By:
========
- app/services/denoise_pipeline/worker_pool.py
- scripts/denoise_pipeline.py

Functions:
=========
- get_system_resources() -> tuple[int, float]
- calculate_optimal_workers(num_chunks: Optional[int]) -> int
"""

import os
import platform
import subprocess
from typing import Optional, Tuple

from .config import CPU_USAGE_RATIO, MAX_WORKERS


def get_system_resources() -> Tuple[int, float]:
    """
    Get system CPU cores and memory information.

    Returns:
        Tuple[int, float]: (cpu_cores, memory_gb)

    Platform Support:
        - macOS: Uses sysctl commands
        - Linux: Uses /proc filesystem
        - Other: os.cpu_count() with an assumed 16 GB

    Fallback:
        Returns (os.cpu_count() or 4, 16.0) if detection fails

    Example:
        >>> cores, memory = get_system_resources()
        >>> print(f"{cores} cores, {memory:.1f} GB RAM")
        10 cores, 16.0 GB RAM
    """
    system = platform.system()

    try:
        if system == "Darwin":
            cpu_result = subprocess.run(
                ['sysctl', '-n', 'hw.ncpu'],
                capture_output=True, text=True
            )
            cpu_cores = int(cpu_result.stdout.strip())

            mem_result = subprocess.run(
                ['sysctl', '-n', 'hw.memsize'],
                capture_output=True, text=True
            )
            memory_gb = int(mem_result.stdout.strip()) / (1024**3)

        elif system == "Linux":
            with open('/proc/cpuinfo') as f:
                cpu_cores = sum(1 for line in f if line.startswith('processor'))

            with open('/proc/meminfo') as f:
                for line in f:
                    if line.startswith('MemTotal:'):
                        memory_kb = int(line.split()[1])
                        memory_gb = memory_kb / (1024**2)
                        break
                else:
                    memory_gb = 16.0

        else:
            cpu_cores = os.cpu_count() or 4
            memory_gb = 16.0

        # Containers can hide /proc/cpuinfo entries
        if cpu_cores <= 0:
            cpu_cores = os.cpu_count() or 4

        return cpu_cores, memory_gb

    except (OSError, ValueError):
        return os.cpu_count() or 4, 16.0


def calculate_optimal_workers(num_chunks: Optional[int] = None) -> int:
    """
    Calculate the chunk worker pool size.

    Args:
        num_chunks: Number of chunks to process, if known. The pool never
            needs more workers than chunks.

    Returns:
        int: Worker thread count, at least 1

    Algorithm:
        1. Get available CPU cores
        2. Apply the usage ratio (80% by default)
        3. Clamp to [1, MAX_WORKERS] and to the chunk count

    Example:
        >>> calculate_optimal_workers(num_chunks=3)
        3
    """
    cpu_cores, _ = get_system_resources()

    workers = max(1, min(MAX_WORKERS, int(cpu_cores * CPU_USAGE_RATIO)))

    if num_chunks is not None and num_chunks > 0:
        workers = min(workers, num_chunks)

    return workers
