import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from tapesplit.core.exceptions import AnalysisError, ExportError, ProbeError
from tapesplit.services import audio_service
from tapesplit.services.audio_service import FfmpegAudioBackend, parse_silence_log

SILENCE_LOG = [
    "Input #0, mp3, from 'tape1_Side_A.mp3':\n",
    "[silencedetect @ 0x55d5c0] silence_start: -0.0130612\n",
    "[silencedetect @ 0x55d5c0] silence_end: 1.2 | silence_duration: 1.21306\n",
    "size=N/A time=00:00:30.00 bitrate=N/A speed= 500x\n",
    "[silencedetect @ 0x55d5c0] silence_start: 45.5\n",
    "[silencedetect @ 0x55d5c0] silence_end: 47.25 | silence_duration: 1.75\n",
    "[silencedetect @ 0x55d5c0] silence_start: 120.1\n",
]


class _FakeProcess:
    def __init__(self, lines, returncode=0):
        self.stderr = iter(lines)
        self.returncode = returncode

    def wait(self):
        return self.returncode


def test_parse_silence_log_pairs_start_and_end():
    silences = parse_silence_log(SILENCE_LOG)

    assert [(s.start, s.end) for s in silences] == [(0.0, 1.2), (45.5, 47.25)]
    assert silences[1].duration == pytest.approx(1.75)


def test_parse_silence_log_ignores_end_without_start():
    lines = [
        "[silencedetect @ 0x1] silence_end: 3.0 | silence_duration: 3.0\n",
        "[silencedetect @ 0x1] silence_start: 10\n",
        "[silencedetect @ 0x1] silence_end: 12 | silence_duration: 2\n",
    ]

    assert [(s.start, s.end) for s in parse_silence_log(lines)] == [(10.0, 12.0)]


def test_detect_silences_runs_silencedetect(monkeypatch):
    captured = {}

    def fake_popen(cmd, **kwargs):
        captured["cmd"] = cmd
        return _FakeProcess(SILENCE_LOG)

    monkeypatch.setattr(audio_service.subprocess, "Popen", fake_popen)

    silences = FfmpegAudioBackend().detect_silences("tape1_Side_A.mp3", noise_db=-35, min_silence=0.6)

    assert len(silences) == 2
    assert captured["cmd"][0] == "ffmpeg"
    assert "silencedetect=noise=-35dB:d=0.6" in captured["cmd"]


def test_detect_silences_nonzero_exit_raises(monkeypatch):
    monkeypatch.setattr(
        audio_service.subprocess, "Popen", lambda cmd, **kwargs: _FakeProcess(["Invalid data found\n"], returncode=1)
    )

    with pytest.raises(AnalysisError, match="Invalid data found"):
        FfmpegAudioBackend().detect_silences("broken.mp3")


def test_detect_silences_missing_binary_raises(monkeypatch):
    def missing(cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(audio_service.subprocess, "Popen", missing)

    with pytest.raises(AnalysisError):
        FfmpegAudioBackend().detect_silences("tape.mp3")


def test_probe_duration_parses_ffprobe_output(monkeypatch):
    captured = {}

    def fake_run(cmd, **kwargs):
        captured["cmd"] = cmd
        captured["timeout"] = kwargs.get("timeout")
        return SimpleNamespace(returncode=0, stdout="1834.512000\n", stderr="")

    monkeypatch.setattr(audio_service.subprocess, "run", fake_run)

    duration = FfmpegAudioBackend(ffprobe_bin="/opt/ffprobe").probe_duration("track_001.mp3")

    assert duration == pytest.approx(1834.512)
    assert captured["cmd"][0] == "/opt/ffprobe"
    assert captured["timeout"] == audio_service.FFPROBE_TIMEOUT_SECONDS


def test_probe_duration_errors(monkeypatch):
    monkeypatch.setattr(
        audio_service.subprocess,
        "run",
        lambda cmd, **kwargs: SimpleNamespace(returncode=1, stdout="", stderr="No such file"),
    )
    with pytest.raises(ProbeError, match="No such file"):
        FfmpegAudioBackend().probe_duration("missing.mp3")

    monkeypatch.setattr(
        audio_service.subprocess,
        "run",
        lambda cmd, **kwargs: SimpleNamespace(returncode=0, stdout="N/A\n", stderr=""),
    )
    with pytest.raises(ProbeError):
        FfmpegAudioBackend().probe_duration("odd.mp3")


def test_probe_duration_timeout(monkeypatch):
    def slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr(audio_service.subprocess, "run", slow)

    with pytest.raises(ProbeError):
        FfmpegAudioBackend().probe_duration("slow.mp3")


def test_extract_uses_stream_copy(tmp_path, monkeypatch):
    captured = {}
    output = tmp_path / "track_001.mp3"

    def fake_run(cmd, **kwargs):
        captured["cmd"] = cmd
        Path(cmd[-1]).write_bytes(b"audio")
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(audio_service.subprocess, "run", fake_run)

    FfmpegAudioBackend().extract("side.mp3", str(output), 11.0, 45.0)

    assert captured["cmd"] == [
        "ffmpeg", "-y", "-ss", "11.0", "-to", "45.0", "-i", "side.mp3", "-c", "copy", str(output)
    ]


def test_extract_open_ended_for_intro_trim(tmp_path, monkeypatch):
    captured = {}

    def fake_run(cmd, **kwargs):
        captured["cmd"] = cmd
        Path(cmd[-1]).write_bytes(b"audio")
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(audio_service.subprocess, "run", fake_run)

    FfmpegAudioBackend().extract("side.mp3", str(tmp_path / "_trimmed_side.mp3"), 12.0)

    assert "-to" not in captured["cmd"]
    assert captured["cmd"][2:4] == ["-ss", "12.0"]


def test_extract_failure_raises_export_error(tmp_path, monkeypatch):
    monkeypatch.setattr(
        audio_service.subprocess,
        "run",
        lambda cmd, **kwargs: SimpleNamespace(returncode=1, stdout="", stderr="header\nConversion failed!\n"),
    )

    with pytest.raises(ExportError, match="Conversion failed!"):
        FfmpegAudioBackend().extract("side.mp3", str(tmp_path / "track_001.mp3"), 0.0, 30.0)


def test_from_settings_uses_configured_binaries():
    settings = SimpleNamespace(FFMPEG_BIN="/usr/local/bin/ffmpeg", FFPROBE_BIN="/usr/local/bin/ffprobe")

    backend = FfmpegAudioBackend.from_settings(settings)

    assert backend.ffmpeg_bin == "/usr/local/bin/ffmpeg"
    assert backend.ffprobe_bin == "/usr/local/bin/ffprobe"
