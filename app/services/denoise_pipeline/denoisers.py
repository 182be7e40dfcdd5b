"""
Denoiser Collaborators

Noise suppression backends invoked once per chunk. Each is a callable
``denoiser(input_path, output_path) -> bool``; the chunk task checks the
output file itself, so a backend only needs to report the tool's status.

Backends:
- DeepFilterDenoiser: DeepFilterNet via its ``deep-filter`` command line
  (48 kHz audio only)
- FFmpegDenoiser: FFmpeg filter chain (afftdn + speech band-pass),
  no model required
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from lib.config import DEEP_FILTER_BIN, DEFAULT_SAMPLE_RATE, DENOISER_BACKENDS, DENOISER_TIMEOUT

logger = logging.getLogger(__name__)


def _check_binary(binary: str, install_hint: str) -> None:
    """Verify an executable is installed and accessible."""
    if shutil.which(binary) is None:
        raise RuntimeError(f"{binary} not found. {install_hint}")


class DeepFilterDenoiser:
    """
    DeepFilterNet noise suppression through the ``deep-filter`` CLI.

    deep-filter writes ``<output-dir>/<input name>``; each call gets its own
    private output directory so concurrent chunks never collide, and the
    result is then moved onto the requested output path.

    Example:
        >>> denoiser = DeepFilterDenoiser(atten_lim_db=30)
        >>> denoiser(Path("chunk_000.wav"), Path("chunk_000_denoised.wav"))
        True
    """

    def __init__(
        self,
        binary: str = DEEP_FILTER_BIN,
        atten_lim_db: Optional[float] = None,
        timeout: int = DENOISER_TIMEOUT,
    ):
        """
        Args:
            binary: deep-filter executable name or path
            atten_lim_db: Attenuation limit in dB (None = unlimited)
            timeout: Per-chunk timeout in seconds
        """
        self.binary = binary
        self.atten_lim_db = atten_lim_db
        self.timeout = timeout

        _check_binary(binary, "Install DeepFilterNet: https://github.com/Rikorose/DeepFilterNet")

    def build_command(self, input_path: Path, output_dir: Path) -> List[str]:
        cmd = [self.binary]
        if self.atten_lim_db is not None:
            cmd += ["--atten-lim", str(self.atten_lim_db)]
        cmd += ["--output-dir", str(output_dir), str(input_path)]
        return cmd

    def __call__(self, input_path: Path, output_path: Path) -> bool:
        input_path = Path(input_path)
        output_path = Path(output_path)

        with tempfile.TemporaryDirectory(
            prefix=f".{input_path.stem}_df_", dir=output_path.parent
        ) as work_dir:
            cmd = self.build_command(input_path, Path(work_dir))
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )

            if result.returncode != 0:
                logger.error(f"deep-filter error for {input_path.name}: {result.stderr.strip()}")
                return False

            produced = Path(work_dir) / input_path.name
            if not produced.exists():
                logger.error(f"deep-filter produced no file for {input_path.name}")
                return False

            shutil.move(str(produced), str(output_path))

        return True


class FFmpegDenoiser:
    """
    Noise suppression using FFmpeg filters.

    Filter chain:
    - afftdn: FFT-based broadband noise reduction
    - highpass: removes low-frequency rumble
    - lowpass: removes high-frequency hiss

    Output keeps the chunk's sample rate as PCM WAV so the chunks can be
    concatenated without re-encoding.

    Example:
        >>> denoiser = FFmpegDenoiser(noise_reduction_db=12)
        >>> denoiser(Path("chunk_000.wav"), Path("chunk_000_denoised.wav"))
        True
    """

    def __init__(
        self,
        noise_reduction_db: float = 12.0,
        noise_floor_db: float = -50.0,
        highpass_freq: int = 80,
        lowpass_freq: int = 12000,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        timeout: int = DENOISER_TIMEOUT,
    ):
        """
        Args:
            noise_reduction_db: afftdn reduction amount (0.01-97 dB)
            noise_floor_db: afftdn noise floor (-80 to -20 dB)
            highpass_freq: High-pass cutoff (Hz)
            lowpass_freq: Low-pass cutoff (Hz)
            sample_rate: Output sample rate
            timeout: Per-chunk timeout in seconds
        """
        self.noise_reduction_db = noise_reduction_db
        self.noise_floor_db = noise_floor_db
        self.highpass_freq = highpass_freq
        self.lowpass_freq = lowpass_freq
        self.sample_rate = sample_rate
        self.timeout = timeout

        _check_binary("ffmpeg", "Please install ffmpeg")

    @property
    def filter_chain(self) -> str:
        filters = [
            f"afftdn=nr={self.noise_reduction_db}:nf={self.noise_floor_db}",
            f"highpass=f={self.highpass_freq}",
            f"lowpass=f={self.lowpass_freq}",
        ]
        return ",".join(filters)

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            "ffmpeg",
            "-hide_banner",
            "-i", str(input_path),
            "-af", self.filter_chain,
            "-ar", str(self.sample_rate),
            "-c:a", "pcm_s16le",
            "-y",
            str(output_path)
        ]

    def __call__(self, input_path: Path, output_path: Path) -> bool:
        cmd = self.build_command(Path(input_path), Path(output_path))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self.timeout
        )

        if result.returncode != 0:
            logger.error(f"FFmpeg denoise error for {Path(input_path).name}: {result.stderr.strip()}")
            return False

        return True


def create_denoiser(backend: str, **kwargs):
    """
    Build a denoiser by backend name.

    Args:
        backend: 'deepfilter' or 'ffmpeg'
        **kwargs: Passed to the backend constructor

    Raises:
        ValueError: Unknown backend
        RuntimeError: Backend executable not installed
    """
    if backend == "deepfilter":
        return DeepFilterDenoiser(**kwargs)
    if backend == "ffmpeg":
        return FFmpegDenoiser(**kwargs)
    raise ValueError(f"Unknown denoiser backend {backend!r} (choose from {DENOISER_BACKENDS})")
