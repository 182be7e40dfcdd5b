#!/usr/bin/env python3
"""
Denoise Pipeline - Parallel Chunk Noise Suppression

Splits a long recording into chunks, denoises the chunks in parallel and
merges them back in order. The merged file is only written when every
chunk succeeded; otherwise every failed chunk is reported.

Usage:
    # Single file
    python scripts/denoise_pipeline.py input.mp3 output.wav

    # Batch mode (multiple files)
    python scripts/denoise_pipeline.py --batch file1.mp3 file2.mp3 --output-dir ./outputs

    # With options
    python scripts/denoise_pipeline.py input.mp3 output.wav \
        --backend ffmpeg \
        --workers 8 \
        --chunk-duration 30 \
        --retries 1

Exit codes:
    0  all chunks denoised and merged
    1  invalid arguments or unreadable input
    2  one or more chunks failed (nothing merged)
    3  every chunk succeeded but the merge failed
"""

import sys
import logging
import argparse
from pathlib import Path
from datetime import datetime

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from lib.audio import validate_audio_file
from lib.config import (
    APP_NAME,
    APP_VERSION,
    DEFAULT_BACKEND,
    DEFAULT_CHUNK_DURATION,
    DEFAULT_CHUNK_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DENOISER_BACKENDS,
    KEEP_FAILED_CHUNKS,
    LOGS_DIR,
    SCRATCH_DIR,
    ensure_directories,
)
from lib.system import get_system_resources
from app.services.denoise_pipeline import (
    AudioSplitter,
    CleanupPolicy,
    DenoisePipeline,
    MergeFailure,
    create_denoiser,
    write_report,
)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_CHUNK_FAILURE = 2
EXIT_MERGE_FAILURE = 3


def setup_logging(verbose: bool = False, log_dir: Path = LOGS_DIR) -> Path:
    """Setup console logging plus a per-run log file. Returns the log file path."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"denoise_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s - %(message)s'
    ))
    logging.getLogger().addHandler(file_handler)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Denoise Pipeline - Parallel Chunk Noise Suppression',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single file
  python scripts/denoise_pipeline.py meeting.mp3 meeting_denoised.wav

  # Batch mode
  python scripts/denoise_pipeline.py --batch file1.mp3 file2.mp3 --output-dir ./outputs

  # FFmpeg backend, 30s chunks, one retry, JSON report
  python scripts/denoise_pipeline.py input.mp3 output.wav \\
    --backend ffmpeg --chunk-duration 30 --retries 1 --report run.json
        """
    )

    # Mode selection
    parser.add_argument(
        'input_file',
        nargs='?',
        help='Input audio file (single file mode)'
    )
    parser.add_argument(
        'output_file',
        nargs='?',
        help='Output audio file (single file mode)'
    )
    parser.add_argument(
        '--batch',
        nargs='+',
        help='Batch mode: list of input files'
    )
    parser.add_argument(
        '--output-dir',
        help='Output directory for batch mode'
    )

    # Denoiser settings
    parser.add_argument(
        '--backend',
        default=DEFAULT_BACKEND,
        choices=DENOISER_BACKENDS,
        help=f'Denoiser backend (default: {DEFAULT_BACKEND})'
    )
    parser.add_argument(
        '--atten-lim',
        type=float,
        default=None,
        help='deep-filter attenuation limit in dB (default: unlimited)'
    )

    # Pipeline settings
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Number of parallel chunk workers (default: auto)'
    )
    parser.add_argument(
        '--chunk-duration',
        type=int,
        default=DEFAULT_CHUNK_DURATION,
        help=f'Chunk duration in seconds (default: {DEFAULT_CHUNK_DURATION})'
    )
    parser.add_argument(
        '--chunk-timeout',
        type=float,
        default=DEFAULT_CHUNK_TIMEOUT,
        help='Fail chunks that run longer than this many seconds (default: no deadline)'
    )
    parser.add_argument(
        '--retries',
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f'Retry failed chunks this many times (default: {DEFAULT_MAX_RETRIES})'
    )

    # Cleanup / output
    failed_group = parser.add_mutually_exclusive_group()
    failed_group.add_argument(
        '--keep-failed',
        dest='keep_failed',
        action='store_true',
        default=KEEP_FAILED_CHUNKS,
        help='Keep chunk files when chunks fail (default)' if KEEP_FAILED_CHUNKS
        else 'Keep chunk files when chunks fail'
    )
    failed_group.add_argument(
        '--delete-failed',
        dest='keep_failed',
        action='store_false',
        help='Delete chunk files when chunks fail'
    )
    parser.add_argument(
        '--scratch-dir',
        default=SCRATCH_DIR,
        help='Parent directory for chunk scratch directories (default: system temp)'
    )
    parser.add_argument(
        '--report',
        help='Write a JSON report of the run (single file mode)'
    )

    # Other options
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable the progress bar'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose logging'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    ensure_directories()
    log_file = setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    # Validate arguments
    if args.batch:
        if not args.output_dir:
            logger.error("Batch mode requires --output-dir")
            return EXIT_USAGE
        output_dir = Path(args.output_dir)
        stems = [Path(f).stem for f in args.batch]
        duplicates = sorted({stem for stem in stems if stems.count(stem) > 1})
        if duplicates:
            logger.error(f"Batch inputs would write the same output file: {duplicates}")
            return EXIT_USAGE
        output_dir.mkdir(parents=True, exist_ok=True)
        file_pairs = [
            (str(f), str(output_dir / f"{stem}_denoised.wav"))
            for f, stem in zip(args.batch, stems)
        ]
    elif args.input_file and args.output_file:
        validation = validate_audio_file(args.input_file)
        if not validation['valid']:
            logger.error(f"Invalid input {args.input_file}: {validation['error']}")
            return EXIT_USAGE
        output_path = Path(args.output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        file_pairs = [(args.input_file, str(output_path))]
    else:
        parser.print_help()
        return EXIT_USAGE

    if args.workers is not None and args.workers < 1:
        logger.error("--workers must be at least 1")
        return EXIT_USAGE
    if args.retries < 0:
        logger.error("--retries must be >= 0")
        return EXIT_USAGE
    if args.chunk_timeout is not None and args.chunk_timeout <= 0:
        logger.error("--chunk-timeout must be positive")
        return EXIT_USAGE

    denoiser_kwargs = {}
    if args.backend == 'deepfilter' and args.atten_lim is not None:
        denoiser_kwargs['atten_lim_db'] = args.atten_lim

    try:
        denoiser = create_denoiser(args.backend, **denoiser_kwargs)
        splitter = AudioSplitter(chunk_duration=args.chunk_duration)
    except (RuntimeError, ValueError) as e:
        logger.error(str(e))
        return EXIT_USAGE

    cpu_cores, memory_gb = get_system_resources()

    # Print configuration
    logger.info("=" * 70)
    logger.info(f"🚀 {APP_NAME.upper()} v{APP_VERSION}")
    logger.info("=" * 70)
    logger.info(f"Mode: {'Batch' if args.batch else 'Single'} ({len(file_pairs)} files)")
    logger.info(f"Backend: {args.backend}")
    logger.info(f"System: {cpu_cores} cores, {memory_gb:.1f} GB RAM")
    logger.info(f"Chunking: {args.chunk_duration}s chunks")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 70)

    start_time = datetime.now()

    pipeline = DenoisePipeline(
        denoiser=denoiser,
        splitter=splitter,
        max_workers=args.workers,
        chunk_timeout=args.chunk_timeout,
        max_retries=args.retries,
        failure_policy=CleanupPolicy.KEEP if args.keep_failed else CleanupPolicy.DELETE,
        show_progress=not args.no_progress,
        scratch_base=args.scratch_dir,
    )

    if args.batch:
        results = pipeline.process_batch(file_pairs)
        for result in results:
            if result['success']:
                logger.info(f"  ✓ {Path(result['output_file']).name}")
            else:
                logger.info(f"  ✗ {Path(result['input_file']).name}: {result.get('error', 'Unknown error')}")

        kinds = {r.get('error_kind') for r in results if not r['success']}
        if not kinds:
            return EXIT_OK
        if 'chunk_failure' in kinds:
            return EXIT_CHUNK_FAILURE
        if 'merge_failure' in kinds:
            return EXIT_MERGE_FAILURE
        return EXIT_USAGE

    input_file, output_file = file_pairs[0]
    try:
        result = pipeline.process(input_file, output_file)
    except MergeFailure as e:
        logger.error(f"❌ MERGE FAILED: {e}")
        return EXIT_MERGE_FAILURE
    except (OSError, RuntimeError) as e:
        logger.error(f"Pipeline failed: {e}")
        return EXIT_USAGE

    if args.report:
        write_report(result, args.report)

    total_time = (datetime.now() - start_time).total_seconds()

    logger.info("")
    logger.info("=" * 70)
    if result.success:
        logger.info("✨ PIPELINE COMPLETE!")
        logger.info("=" * 70)
        logger.info(f"Total time: {total_time/60:.1f} minutes")
        logger.info(f"Chunks: {result.verdict.total_chunks} (attempts: {result.attempts})")
        logger.info(f"Output: {result.output_file}")
        logger.info("=" * 70)
        return EXIT_OK

    logger.error("❌ PIPELINE FAILED - output not written")
    logger.info("=" * 70)
    for index in result.report.failed_indices:
        logger.error(f"  ✗ chunk {index}: {result.report.diagnostics[index]}")
    if result.report.chunk_files_kept and result.scratch_dir:
        logger.info(f"Chunk files kept in: {result.scratch_dir}")
    logger.info("=" * 70)
    return EXIT_CHUNK_FAILURE


if __name__ == "__main__":
    sys.exit(main())
