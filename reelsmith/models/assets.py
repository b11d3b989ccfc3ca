"""
Asset References
Files produced for a job inside its working directory
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ImageAsset:
    """Generated image for one prompt of the flattened prompt list"""
    source_prompt_index: int
    file_path: str


@dataclass(frozen=True)
class AudioAsset:
    """Downloaded speech for one dialogue line"""
    dialogue_text: str
    file_path: str
    duration_seconds: float


@dataclass(frozen=True)
class SubtitleFile:
    """SRT file for one segment"""
    segment_id: str
    file_path: str


@dataclass(frozen=True)
class SubtitleCue:
    """One timed caption"""
    index: int
    start: float
    end: float
    text: str
