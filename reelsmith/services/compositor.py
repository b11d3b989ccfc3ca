"""
Compositor
Joins rendered segments into the final video and lays background music under it
"""

import random
from pathlib import Path
from typing import List, Optional

from ..config import get_settings
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import AssetResolutionError
from ..utils.logger import LogSink, get_logger
from .toolchain import FFmpegToolchain, get_toolchain
from .workspace import JobWorkspace

logger = get_logger()

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"}


class Compositor:
    """Final assembly stages of a job"""

    def __init__(
        self,
        toolchain: Optional[FFmpegToolchain] = None,
        music_dir: Optional[str] = None,
        default_music_type: Optional[str] = None,
        music_volume: Optional[float] = None
    ):
        settings = get_settings()
        self.toolchain = toolchain or get_toolchain()
        self.music_dir = Path(music_dir or settings.music_dir)
        self.default_music_type = default_music_type or settings.default_music_type
        self.music_volume = settings.music_volume if music_volume is None else music_volume
        self.preset = settings.video_preset
        self.crf = settings.video_crf
        self.audio_bitrate = settings.audio_bitrate

    async def concatenate(
        self,
        segment_paths: List[str],
        workspace: JobWorkspace,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> str:
        """Concatenate segments in order, re-encoding audio and video"""
        log = log or LogSink()
        token.raise_if_cancelled()
        if not segment_paths:
            raise AssetResolutionError("No video segments to concatenate")

        log.info("Concatenating video segments...")
        output_path = str(workspace.final_video_path)

        cmd = [self.toolchain.ffmpeg, "-y"]
        for path in segment_paths:
            cmd += ["-i", path]
        labels = "".join(f"[{index}:v][{index}:a]" for index in range(len(segment_paths)))
        cmd += [
            "-filter_complex", f"{labels}concat=n={len(segment_paths)}:v=1:a=1[v][a]",
            "-map", "[v]",
            "-map", "[a]",
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-movflags", "+faststart",
            output_path
        ]

        await self.toolchain.run(cmd, token, log, label="Concatenation")
        log.info(f"Final video saved successfully: {output_path}")
        return output_path

    def pick_music_clip(self, music_type: Optional[str], log: Optional[LogSink] = None) -> Path:
        """Random clip from the category directory, falling back to the default category"""
        log = log or LogSink()
        category = music_type or self.default_music_type
        directory = self.music_dir / category

        if not directory.is_dir():
            log.warning(f'Music type directory "{category}" not found. Falling back to default.')
            category = self.default_music_type
            directory = self.music_dir / category

        clips = []
        if directory.is_dir():
            clips = sorted(
                path for path in directory.iterdir()
                if path.is_file() and path.suffix.lower() in AUDIO_EXTENSIONS
            )
        if not clips:
            raise AssetResolutionError(f"No background music clips found in {directory}")

        clip = random.choice(clips)
        log.info(f"Selected background music: {category}/{clip.name}")
        return clip

    async def mix_background_music(
        self,
        video_path: str,
        music_type: Optional[str],
        workspace: JobWorkspace,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> str:
        """
        Mix a background clip under the video's own audio.

        The clip is looped or trimmed to the video length and attenuated to
        `music_volume`; the original audio keeps its level and the video
        stream is copied.

        Returns:
            Path to `<title>_with_music.mp4`
        """
        log = log or LogSink()
        token.raise_if_cancelled()
        log.info("Adding background music...")

        clip = self.pick_music_clip(music_type, log)
        video_duration = await self.toolchain.probe_duration(video_path)

        fitted_clip = str(workspace.audio_dir / f"temp_music_clip{clip.suffix.lower()}")
        await self.toolchain.fit_audio_duration(str(clip), fitted_clip, video_duration, token, log)

        output_path = str(workspace.final_with_music_path)
        cmd = [
            self.toolchain.ffmpeg, "-y",
            "-i", video_path,
            "-i", fitted_clip,
            "-filter_complex",
            f"[1:a]volume={self.music_volume}[bgmusic];"
            "[0:a][bgmusic]amix=inputs=2:duration=shortest:normalize=0[a]",
            "-map", "0:v",
            "-map", "[a]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-shortest",
            output_path
        ]

        await self.toolchain.run(cmd, token, log, duration=video_duration, label="Final video creation")
        log.info(f"Final video with background music saved successfully: {output_path}")
        return output_path
