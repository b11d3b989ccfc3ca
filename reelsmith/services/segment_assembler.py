"""
Segment Assembler
Renders one segment: looped stills, merged narration and burned-in subtitles
"""

import os
from typing import List, Optional

from ..config import get_settings
from ..models.assets import AudioAsset, ImageAsset, SubtitleFile
from ..models.plan import Segment
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import AssetResolutionError, ToolchainError
from ..utils.logger import LogSink, get_logger
from .subtitle_timer import audio_by_text
from .toolchain import FFmpegToolchain, escape_filter_path, get_toolchain
from .workspace import JobWorkspace

logger = get_logger()


class SegmentAssembler:
    """Turns a planned segment and its generated assets into an mp4"""

    def __init__(self, toolchain: Optional[FFmpegToolchain] = None):
        settings = get_settings()
        self.toolchain = toolchain or get_toolchain()
        self.width = settings.image_width
        self.height = settings.image_height
        self.preset = settings.video_preset
        self.crf = settings.video_crf
        self.audio_bitrate = settings.audio_bitrate
        self.subtitle_style = settings.subtitle_style

    def resolve_images(self, segment: Segment, image_assets: List[ImageAsset]) -> List[str]:
        """Map each image of the segment to its generated file"""
        if not segment.images:
            raise AssetResolutionError(f"Segment {segment.id} has no images", segment_id=segment.id)

        by_index = {asset.source_prompt_index: asset for asset in image_assets}
        paths = []
        for image in segment.images:
            asset = by_index.get(image.asset_number - 1)
            if asset is None or not os.path.exists(asset.file_path):
                raise AssetResolutionError(
                    f"Image not found for ID: {image.id or image.asset_number}",
                    segment_id=segment.id
                )
            paths.append(asset.file_path)
        return paths

    def resolve_audio(self, segment: Segment, audio_assets: List[AudioAsset]) -> List[str]:
        """Map each dialogue line of the segment to its downloaded speech"""
        if not segment.dialogue:
            raise AssetResolutionError(f"Segment {segment.id} has no dialogue", segment_id=segment.id)

        lookup = audio_by_text(audio_assets)
        paths = []
        for line in segment.dialogue:
            asset = lookup.get(line)
            if asset is None or not os.path.exists(asset.file_path):
                raise AssetResolutionError(
                    f"Audio file not found for dialogue: {line}",
                    segment_id=segment.id
                )
            paths.append(asset.file_path)
        return paths

    async def build_segment(
        self,
        segment: Segment,
        image_assets: List[ImageAsset],
        audio_assets: List[AudioAsset],
        subtitle_file: Optional[SubtitleFile],
        workspace: JobWorkspace,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> str:
        """
        Render `segments/<id>/<id>.mp4` for one segment.

        Each image is shown for an equal share of the narration length.

        Returns:
            Path to the rendered segment
        """
        log = log or LogSink()
        token.raise_if_cancelled()
        log.info(f"Creating video segment {segment.id}...")

        image_paths = self.resolve_images(segment, image_assets)
        audio_paths = self.resolve_audio(segment, audio_assets)

        if len(audio_paths) > 1:
            narration_path = str(workspace.audio_dir / f"merged_audio_{segment.id}.mp3")
            await self.toolchain.concat_audio(audio_paths, narration_path, token, log)
        else:
            narration_path = audio_paths[0]

        if not await self.toolchain.has_audio_stream(narration_path):
            raise ToolchainError(f"No audio stream found in {narration_path}.")

        audio_duration = await self.toolchain.probe_duration(narration_path)
        image_duration = audio_duration / len(image_paths)

        output_path = str(workspace.segment_dir(segment.id) / f"{segment.id}.mp4")
        subtitles_path = subtitle_file.file_path if subtitle_file else None

        cmd = self.build_command(image_paths, image_duration, narration_path, subtitles_path, output_path)
        token.raise_if_cancelled()
        await self.toolchain.run(
            cmd,
            token,
            log,
            duration=audio_duration,
            label=f"Segment {segment.id} generation"
        )

        log.info(f"Video segment saved successfully: {output_path}")
        return output_path

    def build_command(
        self,
        image_paths: List[str],
        image_duration: float,
        audio_path: str,
        subtitles_path: Optional[str],
        output_path: str
    ) -> List[str]:
        cmd = [self.toolchain.ffmpeg, "-y"]
        for image_path in image_paths:
            cmd += ["-loop", "1", "-t", f"{image_duration:.3f}", "-i", image_path]
        cmd += ["-i", audio_path]

        filters = []
        labels = ""
        for index in range(len(image_paths)):
            filters.append(f"[{index}:v]scale={self.width}:{self.height},setsar=1[v{index}]")
            labels += f"[v{index}]"
        filters.append(f"{labels}concat=n={len(image_paths)}:v=1:a=0[vcat]")

        video_label = "[vcat]"
        if subtitles_path and os.path.exists(subtitles_path):
            sub_path = escape_filter_path(subtitles_path)
            filters.append(f"[vcat]subtitles='{sub_path}':force_style='{self.subtitle_style}'[vout]")
            video_label = "[vout]"

        cmd += [
            "-filter_complex", ";".join(filters),
            "-map", video_label,
            "-map", f"{len(image_paths)}:a",
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            output_path
        ]
        return cmd
