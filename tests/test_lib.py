"""Tests for lib/ helpers (audio inspection and worker sizing)."""

import subprocess

import pytest

from lib import audio, system


def fake_ffprobe(stdout="", returncode=0, stderr=""):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)
    return run


class TestAudioDuration:
    def test_parses_ffprobe_output(self, monkeypatch):
        monkeypatch.setattr(audio.subprocess, "run", fake_ffprobe(stdout="4462.08\n"))
        assert audio.get_audio_duration("meeting.wav") == pytest.approx(4462.08)

    def test_ffprobe_failure(self, monkeypatch):
        monkeypatch.setattr(audio.subprocess, "run", fake_ffprobe(returncode=1, stderr="Invalid data"))
        with pytest.raises(RuntimeError, match="ffprobe failed"):
            audio.get_audio_duration("broken.wav")

    def test_no_duration(self, monkeypatch):
        monkeypatch.setattr(audio.subprocess, "run", fake_ffprobe(stdout="N/A\n"))
        with pytest.raises(RuntimeError, match="no duration"):
            audio.get_audio_duration("stream.wav")

    def test_ffprobe_missing(self, monkeypatch):
        def missing(cmd, **kwargs):
            raise FileNotFoundError("ffprobe")

        monkeypatch.setattr(audio.subprocess, "run", missing)
        with pytest.raises(RuntimeError, match="ffprobe not found"):
            audio.get_audio_duration("meeting.wav")


class TestValidateAudioFile:
    def test_missing_file(self, tmp_path):
        result = audio.validate_audio_file(str(tmp_path / "nope.wav"))
        assert result['valid'] is False
        assert result['error'] == 'File not found'

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        result = audio.validate_audio_file(str(path))
        assert result['valid'] is False
        assert result['format'] == '.txt'

    def test_valid_file(self, tmp_path, monkeypatch):
        path = tmp_path / "meeting.WAV"
        path.write_bytes(b"RIFF")
        monkeypatch.setattr(audio, "get_audio_duration", lambda p: 90.5)

        result = audio.validate_audio_file(str(path))

        assert result == {'valid': True, 'error': None, 'duration_seconds': 90.5, 'format': '.wav'}

    def test_zero_duration(self, tmp_path, monkeypatch):
        path = tmp_path / "silence.wav"
        path.write_bytes(b"RIFF")
        monkeypatch.setattr(audio, "get_audio_duration", lambda p: 0.0)

        assert audio.validate_audio_file(str(path))['valid'] is False

    def test_unreadable_audio(self, tmp_path, monkeypatch):
        path = tmp_path / "broken.wav"
        path.write_bytes(b"junk")

        def broken(p):
            raise RuntimeError("ffprobe failed for broken.wav")

        monkeypatch.setattr(audio, "get_audio_duration", broken)
        result = audio.validate_audio_file(str(path))
        assert result['valid'] is False
        assert "ffprobe failed" in result['error']


class TestWorkerSizing:
    @pytest.mark.parametrize("cores, chunks, expected", [
        (10, None, 8),
        (10, 3, 3),
        (1, None, 1),
        (64, None, 16),
        (64, 100, 16),
        (4, 0, 3),
    ])
    def test_calculate_optimal_workers(self, monkeypatch, cores, chunks, expected):
        monkeypatch.setattr(system, "get_system_resources", lambda: (cores, 16.0))
        monkeypatch.setattr(system, "CPU_USAGE_RATIO", 0.8)
        monkeypatch.setattr(system, "MAX_WORKERS", 16)
        assert system.calculate_optimal_workers(num_chunks=chunks) == expected

    def test_get_system_resources_is_positive(self):
        cores, memory_gb = system.get_system_resources()
        assert cores >= 1
        assert memory_gb > 0
