"""
FFmpeg Toolchain
Killable ffmpeg/ffprobe invocations shared by segment assembly and composition
"""

import asyncio
import json
import subprocess
from typing import Any, Callable, Dict, List, Optional

from ..config import get_settings
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import JobCancelledError, ToolchainError
from ..utils.logger import LogSink, get_logger

logger = get_logger()


def parse_ffmpeg_time(line: str) -> Optional[float]:
    """Extract the `time=HH:MM:SS.xx` position from an ffmpeg progress line"""
    if "time=" not in line:
        return None
    try:
        time_str = line.split("time=")[1].split()[0]
        parts = time_str.split(":")
        return float(parts[0]) * 3600 + float(parts[1]) * 60 + float(parts[2])
    except (IndexError, ValueError):
        return None


def escape_filter_path(path: str) -> str:
    """Escape a file path for use inside an ffmpeg filter argument"""
    return path.replace('\\', '/').replace(':', '\\:')


class FFmpegToolchain:
    """Runs ffmpeg and ffprobe as child processes that cancellation can terminate"""

    def __init__(self, ffmpeg_binary: Optional[str] = None, ffprobe_binary: Optional[str] = None):
        settings = get_settings()
        self.ffmpeg = ffmpeg_binary or settings.ffmpeg_binary
        self.ffprobe = ffprobe_binary or settings.ffprobe_binary

    def check_available(self) -> bool:
        """Verify FFmpeg is available"""
        try:
            result = subprocess.run(
                [self.ffmpeg, "-version"],
                capture_output=True,
                text=True
            )
        except FileNotFoundError:
            logger.error("FFmpeg not installed. Please install FFmpeg.")
            return False

        if result.returncode != 0:
            logger.error("FFmpeg not found")
            return False
        logger.info("FFmpeg available")
        return True

    async def run(
        self,
        cmd: List[str],
        token: CancellationToken,
        log: Optional[LogSink] = None,
        duration: Optional[float] = None,
        label: str = "FFmpeg"
    ):
        """
        Execute a toolchain command in a worker thread.

        The child process is terminated if the token fires while it runs.

        Raises:
            JobCancelledError: the token fired before or during the run
            ToolchainError: the process exited non-zero
        """
        log = log or LogSink()
        token.raise_if_cancelled()
        log.info(f"{label} started.")

        progress: Optional[Callable[[float], None]] = None
        if duration:
            last_reported = [0]

            def progress(position: float):
                percent = int(min(100, position / duration * 100))
                if percent >= last_reported[0] + 25:
                    last_reported[0] = percent
                    log.debug(f"{label}: {percent}%")

        loop = asyncio.get_running_loop()
        returncode, stderr_tail = await loop.run_in_executor(
            None,
            self._run_process,
            cmd,
            token,
            progress
        )

        if token.cancelled:
            log.info(f"{label} terminated by cancellation.")
            raise JobCancelledError(token.job_id)

        if returncode != 0:
            log.error(f"{label} failed: {stderr_tail[-300:]}")
            raise ToolchainError(
                f"{label} failed with exit code {returncode}",
                command=" ".join(cmd),
                stderr=stderr_tail
            )

    def _run_process(
        self,
        cmd: List[str],
        token: CancellationToken,
        progress: Optional[Callable[[float], None]]
    ):
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True
            )
        except FileNotFoundError as exc:
            raise ToolchainError(f"Executable not found: {cmd[0]}", command=" ".join(cmd)) from exc

        unregister = token.register(process.terminate)
        stderr_output: List[str] = []
        try:
            for line in process.stderr:
                stderr_output.append(line)
                if len(stderr_output) > 50:
                    stderr_output.pop(0)
                if progress:
                    position = parse_ffmpeg_time(line)
                    if position is not None:
                        progress(position)
            process.wait()
        finally:
            unregister()
            if process.poll() is None:
                process.kill()
                process.wait()

        return process.returncode, "".join(stderr_output[-10:])

    async def probe(self, path: str) -> Dict[str, Any]:
        """Return ffprobe's JSON description of a media file"""
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-show_format",
            "-show_streams",
            "-of", "json",
            path
        ]

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None,
                lambda: subprocess.run(cmd, capture_output=True, text=True)
            )
        except FileNotFoundError as exc:
            raise ToolchainError(f"Executable not found: {self.ffprobe}", command=" ".join(cmd)) from exc

        if result.returncode != 0:
            raise ToolchainError(
                f"Failed to probe {path}",
                command=" ".join(cmd),
                stderr=result.stderr
            )
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ToolchainError(f"Unreadable probe output for {path}", command=" ".join(cmd)) from exc

    async def probe_duration(self, path: str) -> float:
        metadata = await self.probe(path)
        try:
            return float(metadata["format"]["duration"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ToolchainError(f"No duration reported for {path}") from exc

    async def has_audio_stream(self, path: str) -> bool:
        metadata = await self.probe(path)
        return any(stream.get("codec_type") == "audio" for stream in metadata.get("streams", []))

    async def concat_audio(
        self,
        inputs: List[str],
        output_path: str,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> str:
        """Join audio files end to end"""
        cmd = [self.ffmpeg, "-y"]
        for path in inputs:
            cmd += ["-i", path]
        labels = "".join(f"[{index}:a]" for index in range(len(inputs)))
        cmd += [
            "-filter_complex", f"{labels}concat=n={len(inputs)}:v=0:a=1[a]",
            "-map", "[a]",
            output_path
        ]
        await self.run(cmd, token, log, label="Merging audio")
        return output_path

    async def fit_audio_duration(
        self,
        input_path: str,
        output_path: str,
        duration: float,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> str:
        """Loop or trim an audio file to exactly `duration` seconds"""
        cmd = [
            self.ffmpeg, "-y",
            "-stream_loop", "-1",
            "-i", input_path,
            "-t", f"{duration:.3f}",
            output_path
        ]
        await self.run(cmd, token, log, label="Adjusting audio duration")
        return output_path


_toolchain: Optional[FFmpegToolchain] = None


def get_toolchain() -> FFmpegToolchain:
    """Return singleton toolchain."""
    global _toolchain
    if _toolchain is None:
        _toolchain = FFmpegToolchain()
    return _toolchain
