import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.exceptions import AnalysisError, ExportError, ProbeError
from ..models.tracks import SilenceInterval

logger = logging.getLogger(__name__)

FFPROBE_TIMEOUT_SECONDS = 120

_PATTERN_START = re.compile(r"silence_start:\s*(-?[\d\.]+)")
_PATTERN_END = re.compile(r"silence_end:\s*(-?[\d\.]+)")


def _format_time(seconds: float) -> str:
    """Convert seconds to hh:mm:ss format"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    seconds = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_silence_log(lines: Iterable[str]) -> List[SilenceInterval]:
    """
    Parse silencedetect output into silence intervals, in arrival order.
    A silence_end only closes an interval when a silence_start was seen before it;
    a trailing silence_start with no end is dropped.
    """
    silences = []
    current_start: Optional[float] = None

    for line in lines:
        if "silence_start" in line:
            match = _PATTERN_START.search(line)
            if match:
                current_start = max(float(match.group(1)), 0.0)
        elif "silence_end" in line and current_start is not None:
            match = _PATTERN_END.search(line)
            if match:
                end = float(match.group(1))
                if end > current_start:
                    silences.append(SilenceInterval(start=current_start, end=end))
                current_start = None

    return silences


class FfmpegAudioBackend:
    """Audio operations backed by the ffmpeg and ffprobe executables.

    Every method blocks until the subprocess exits; async callers run them in an executor.
    """

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe"):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    @classmethod
    def from_settings(cls, settings) -> "FfmpegAudioBackend":
        return cls(ffmpeg_bin=settings.FFMPEG_BIN, ffprobe_bin=settings.FFPROBE_BIN)

    def is_available(self) -> bool:
        return shutil.which(self.ffmpeg_bin) is not None and shutil.which(self.ffprobe_bin) is not None

    def detect_silences(self, input_file: str, noise_db: float = -35, min_silence: float = 0.6) -> List[SilenceInterval]:
        """Run ffmpeg silencedetect over a file and return the detected silences"""
        logger.info(f"[silence] Detecting silence in {Path(input_file).name}")
        logger.info(f"[silence] Settings: noise={noise_db}dB, minSilence={min_silence}s")

        # noinspection SpellCheckingInspection
        cmd = [
            self.ffmpeg_bin,
            "-i",
            str(input_file),
            "-af",
            f"silencedetect=noise={noise_db}dB:d={min_silence}",
            "-f",
            "null",
            "-",
        ]

        try:
            process = subprocess.Popen(cmd, stderr=subprocess.PIPE, text=True, encoding="utf-8", errors="replace")
        except OSError as e:
            raise AnalysisError(f"Silence detection failed: {e}") from e

        log_tail: List[str] = []

        def _lines():
            for line in process.stderr:
                log_tail.append(line.rstrip())
                del log_tail[:-20]
                yield line

        silences = parse_silence_log(_lines())
        process.wait()

        if process.returncode != 0:
            raise AnalysisError(
                f"Silence detection failed with return code {process.returncode}: " + "\n".join(log_tail[-5:])
            )

        logger.info(f"[silence] Found {len(silences)} silence segments")
        for silence in silences:
            logger.debug(f"[silence] {_format_time(silence.start)} - {_format_time(silence.end)} ({silence.duration:.2f}s)")
        return silences

    def probe_duration(self, file_path: str) -> float:
        """Return the container duration in seconds as reported by ffprobe"""
        cmd = [
            self.ffprobe_bin,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(file_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=FFPROBE_TIMEOUT_SECONDS)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProbeError(f"ffprobe failed for {file_path}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed: {result.stderr.strip()}")

        try:
            return float(result.stdout.strip())
        except ValueError as e:
            raise ProbeError(f"Unable to parse duration for {file_path}: {e}") from e

    def extract(self, input_file: str, output_path: str, start: float, end: Optional[float] = None) -> str:
        """
        Copy the [start, end) range of input_file into a new container without re-encoding.
        With no end, everything from start to the end of the input is kept.
        """
        cmd = [self.ffmpeg_bin, "-y", "-ss", str(start)]
        if end is not None:
            cmd.extend(["-to", str(end)])
        cmd.extend(["-i", str(input_file), "-c", "copy", str(output_path)])

        self._run_ffmpeg(cmd)
        if not Path(output_path).exists():
            raise ExportError(f"ffmpeg reported success but {output_path} was not created")
        return str(output_path)

    def copy(self, input_file: str, output_path: str) -> str:
        """Remux the whole input into output_path without re-encoding"""
        cmd = [self.ffmpeg_bin, "-y", "-i", str(input_file), "-c", "copy", str(output_path)]
        self._run_ffmpeg(cmd)
        if not Path(output_path).exists():
            raise ExportError(f"ffmpeg reported success but {output_path} was not created")
        return str(output_path)

    @staticmethod
    def _run_ffmpeg(command: List[str]):
        try:
            result = subprocess.run(command, capture_output=True, text=True, encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExportError(str(e)) from e
        if result.returncode != 0:
            raise ExportError(result.stderr.strip().splitlines()[-1] if result.stderr.strip() else "ffmpeg command failed")
