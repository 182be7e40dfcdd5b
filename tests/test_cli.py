"""Tests for scripts/denoise_pipeline.py exit codes."""

import importlib.util
import json
from pathlib import Path

import pytest

from app.services.denoise_pipeline.pipeline import DenoisePipeline

from conftest import FakeDenoiser, FakeMerger, make_descriptors

SCRIPT = Path(__file__).parent.parent / "scripts" / "denoise_pipeline.py"


def load_cli():
    spec = importlib.util.spec_from_file_location("denoise_pipeline_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class FakeSplitter:
    def __init__(self, chunk_duration=60, count=3):
        self.chunk_duration = chunk_duration
        self.count = count

    def split(self, input_file, output_dir):
        return make_descriptors(Path(output_dir), self.count)


@pytest.fixture
def cli(monkeypatch, tmp_path):
    module = load_cli()
    state = {'denoiser': FakeDenoiser(), 'merger': FakeMerger()}

    monkeypatch.setattr(module, "ensure_directories", lambda: None)
    monkeypatch.setattr(module, "setup_logging", lambda verbose: tmp_path / "run.log")
    monkeypatch.setattr(module, "validate_audio_file", lambda path: {'valid': True, 'error': None})
    monkeypatch.setattr(module, "create_denoiser", lambda backend, **kwargs: state['denoiser'])
    monkeypatch.setattr(module, "AudioSplitter", FakeSplitter)
    monkeypatch.setattr(
        module, "DenoisePipeline",
        lambda **kwargs: DenoisePipeline(merger=state['merger'], **kwargs),
    )
    module.state = state
    return module


def base_args(tmp_path):
    return [
        str(tmp_path / "in.mp3"),
        str(tmp_path / "out.wav"),
        "--no-progress",
        "--workers", "2",
        "--scratch-dir", str(tmp_path / "scratch"),
    ]


def test_success_exit_code(cli, tmp_path):
    assert cli.main(base_args(tmp_path)) == cli.EXIT_OK
    assert (tmp_path / "out.wav").exists()


def test_chunk_failure_exit_code(cli, tmp_path):
    cli.state['denoiser'] = FakeDenoiser(fail={1})

    assert cli.main(base_args(tmp_path)) == cli.EXIT_CHUNK_FAILURE
    assert not (tmp_path / "out.wav").exists()


def test_merge_failure_exit_code(cli, tmp_path):
    cli.state['merger'] = FakeMerger(succeed=False)

    assert cli.main(base_args(tmp_path)) == cli.EXIT_MERGE_FAILURE


def test_retries_recover(cli, tmp_path):
    cli.state['denoiser'] = FakeDenoiser(fail_times={0: 1})

    assert cli.main(base_args(tmp_path) + ["--retries", "1"]) == cli.EXIT_OK


def test_report_written(cli, tmp_path):
    cli.state['denoiser'] = FakeDenoiser(fail={2})
    report = tmp_path / "run.json"

    assert cli.main(base_args(tmp_path) + ["--report", str(report)]) == cli.EXIT_CHUNK_FAILURE

    data = json.loads(report.read_text(encoding="utf-8"))
    assert data['verdict']['failed_indices'] == [2]


def test_invalid_input(cli, tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "validate_audio_file", lambda path: {'valid': False, 'error': 'File not found'})
    assert cli.main(base_args(tmp_path)) == cli.EXIT_USAGE


def test_missing_arguments(cli):
    assert cli.main([]) == cli.EXIT_USAGE


def test_invalid_worker_count(cli, tmp_path):
    args = [str(tmp_path / "in.mp3"), str(tmp_path / "out.wav"), "--workers", "0"]
    assert cli.main(args) == cli.EXIT_USAGE


def test_backend_not_installed(cli, tmp_path, monkeypatch):
    def missing(backend, **kwargs):
        raise RuntimeError("deep-filter not found")

    monkeypatch.setattr(cli, "create_denoiser", missing)
    assert cli.main(base_args(tmp_path)) == cli.EXIT_USAGE


def test_batch_requires_output_dir(cli, tmp_path):
    assert cli.main(["--batch", str(tmp_path / "a.mp3")]) == cli.EXIT_USAGE


def test_batch_mode(cli, tmp_path):
    out_dir = tmp_path / "outputs"
    args = [
        "--batch", str(tmp_path / "a.mp3"), str(tmp_path / "b.mp3"),
        "--output-dir", str(out_dir),
        "--no-progress",
        "--scratch-dir", str(tmp_path / "scratch"),
    ]

    assert cli.main(args) == cli.EXIT_OK
    assert (out_dir / "a_denoised.wav").exists()
    assert (out_dir / "b_denoised.wav").exists()


def test_batch_with_chunk_failure(cli, tmp_path):
    cli.state['denoiser'] = FakeDenoiser(fail={0})
    args = [
        "--batch", str(tmp_path / "a.mp3"),
        "--output-dir", str(tmp_path / "outputs"),
        "--no-progress",
        "--scratch-dir", str(tmp_path / "scratch"),
    ]

    assert cli.main(args) == cli.EXIT_CHUNK_FAILURE


@pytest.mark.parametrize("timeout", ["0", "-5"])
def test_invalid_chunk_timeout(cli, tmp_path, timeout):
    assert cli.main(base_args(tmp_path) + ["--chunk-timeout", timeout]) == cli.EXIT_USAGE


def test_merger_crash_exit_code(cli, tmp_path):
    cli.state['merger'] = FakeMerger(raise_error=RuntimeError("encoder crashed"))

    assert cli.main(base_args(tmp_path)) == cli.EXIT_MERGE_FAILURE


def test_batch_rejects_inputs_with_same_name(cli, tmp_path):
    out_dir = tmp_path / "outputs"
    args = [
        "--batch", str(tmp_path / "a" / "x.mp3"), str(tmp_path / "b" / "x.wav"),
        "--output-dir", str(out_dir),
        "--no-progress",
        "--scratch-dir", str(tmp_path / "scratch"),
    ]

    assert cli.main(args) == cli.EXIT_USAGE
    assert not out_dir.exists()
