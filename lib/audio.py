"""
Audio Utilities Module - lib/audio.py

Functions for inspecting audio files before they enter the pipeline.

Impact Analysis:
===============
- get_audio_duration(): Used by the splitter and the CLI summary
- validate_audio_file(): Used by the CLI before a run starts

Dependencies:
============
- lib/config.py (SUPPORTED_FORMATS)

Used By:
========
- app/services/denoise_pipeline/splitter.py
- scripts/denoise_pipeline.py

External Dependencies:
====================
- ffprobe (from ffmpeg) for duration detection

Functions:
=========
- get_audio_duration(file_path: str) -> float
- validate_audio_file(file_path: str, supported_formats: list) -> dict
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .config import SUPPORTED_FORMATS


def get_audio_duration(file_path: str, timeout: int = 10) -> float:
    """
    Get audio file duration in seconds using ffprobe.

    Args:
        file_path: Path to audio file
        timeout: ffprobe timeout in seconds

    Returns:
        float: Duration in seconds

    Raises:
        RuntimeError: If ffprobe is missing, fails, or reports no duration

    Example:
        >>> duration = get_audio_duration("meeting.wav")
        >>> print(f"{duration / 60:.1f} minutes")
        74.4 minutes
    """
    cmd = [
        'ffprobe', '-v', 'error', '-show_entries',
        'format=duration', '-of', 'default=noprint_wrappers=1:nokey=1',
        str(file_path)
    ]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except FileNotFoundError:
        raise RuntimeError("ffprobe not found. Please install ffmpeg")
    except subprocess.TimeoutExpired:
        raise RuntimeError(f"ffprobe timed out reading {file_path}")

    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr.strip()}")

    try:
        return float(result.stdout.strip())
    except ValueError:
        raise RuntimeError(f"ffprobe reported no duration for {file_path}")


def validate_audio_file(
    file_path: str,
    supported_formats: Optional[List[str]] = None,
) -> Dict:
    """
    Validate an audio file before denoising.

    Args:
        file_path: Path to audio file
        supported_formats: Allowed extensions (default: SUPPORTED_FORMATS)

    Returns:
        dict: {
            'valid': bool,
            'error': str or None,
            'duration_seconds': float,
            'format': str
        }

    Example:
        >>> result = validate_audio_file("meeting.wav")
        >>> if result['valid']:
        ...     print(f"{result['duration_seconds']:.0f}s of {result['format']}")
    """
    formats = supported_formats if supported_formats is not None else SUPPORTED_FORMATS
    path = Path(file_path)

    if not path.exists():
        return {
            'valid': False,
            'error': 'File not found',
            'duration_seconds': 0.0,
            'format': None
        }

    file_ext = path.suffix.lower()
    if file_ext not in formats:
        return {
            'valid': False,
            'error': f'Unsupported format: {file_ext}',
            'duration_seconds': 0.0,
            'format': file_ext
        }

    try:
        duration = get_audio_duration(str(path))
    except RuntimeError as e:
        return {
            'valid': False,
            'error': str(e),
            'duration_seconds': 0.0,
            'format': file_ext
        }

    if duration <= 0:
        return {
            'valid': False,
            'error': 'Audio has zero duration',
            'duration_seconds': 0.0,
            'format': file_ext
        }

    return {
        'valid': True,
        'error': None,
        'duration_seconds': duration,
        'format': file_ext
    }
