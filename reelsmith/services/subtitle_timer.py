"""
Subtitle Timer
Builds SRT captions for a segment from the measured length of each spoken line
"""

from pathlib import Path
from typing import Dict, List, Optional

from ..models.assets import AudioAsset, SubtitleCue, SubtitleFile
from ..models.plan import Segment
from ..utils.exceptions import AssetResolutionError
from ..utils.logger import LogSink


def format_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def audio_by_text(audio_assets: List[AudioAsset]) -> Dict[str, AudioAsset]:
    """Index audio assets by the dialogue line they speak"""
    return {asset.dialogue_text: asset for asset in audio_assets}


class SubtitleTimer:
    """Lays dialogue lines end to end on the segment's timeline"""

    def build_cues(self, segment: Segment, audio_assets: List[AudioAsset]) -> List[SubtitleCue]:
        lookup = audio_by_text(audio_assets)
        cues: List[SubtitleCue] = []
        elapsed = 0.0

        for line in segment.dialogue:
            asset = lookup.get(line)
            if asset is None:
                raise AssetResolutionError(
                    f"No audio found for dialogue line: {line}",
                    segment_id=segment.id
                )
            start = elapsed
            elapsed += asset.duration_seconds
            cues.append(SubtitleCue(index=len(cues) + 1, start=start, end=elapsed, text=line))

        return cues

    def render(self, cues: List[SubtitleCue]) -> str:
        blocks = [
            f"{cue.index}\n{format_timestamp(cue.start)} --> {format_timestamp(cue.end)}\n{cue.text}\n"
            for cue in cues
        ]
        return "\n".join(blocks)

    def build_subtitles(
        self,
        segment: Segment,
        audio_assets: List[AudioAsset],
        output_dir: str,
        log: Optional[LogSink] = None
    ) -> SubtitleFile:
        """Write `<segment id>.srt` and return its reference"""
        log = log or LogSink()
        cues = self.build_cues(segment, audio_assets)

        Path(output_dir).mkdir(parents=True, exist_ok=True)
        output_path = Path(output_dir) / f"{segment.id}.srt"
        output_path.write_text(self.render(cues), encoding="utf-8")

        log.info(f"Subtitles created at {output_path}")
        return SubtitleFile(segment_id=segment.id, file_path=str(output_path))
