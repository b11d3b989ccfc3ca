"""
Script Plan Models
Structured content plan produced by the language model for one job
"""

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_DIGITS = re.compile(r"(\d+)")


class ImageSpec(BaseModel):
    """One still image within a segment"""
    model_config = ConfigDict(extra="allow")

    id: str = ""
    prompt: str
    duration: Optional[float] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    # Position of this image in the flattened prompt list of the whole plan
    position: int = Field(default=0, exclude=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return "" if value is None else str(value)

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, value):
        if value in (None, ""):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def asset_number(self) -> int:
        """1-based number of the generated file this image refers to"""
        match = _DIGITS.search(self.id)
        if match:
            return int(match.group(1))
        return self.position + 1


class Segment(BaseModel):
    """One titled sub-section of the video"""
    model_config = ConfigDict(extra="allow")

    id: str
    timestamp: Optional[str] = None
    segment_title: Optional[str] = None
    dialogue: List[str] = Field(default_factory=list)
    images: List[ImageSpec] = Field(default_factory=list)
    transition: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    @field_validator("id")
    @classmethod
    def id_is_single_path_component(cls, value: str) -> str:
        # Segment ids name the segment's directory and subtitle file
        if not value.strip() or value in (".", "..") or any(char in value for char in "/\\\0"):
            raise ValueError(f"Segment id must be a plain file name: {value!r}")
        return value

    @field_validator("dialogue", mode="before")
    @classmethod
    def coerce_dialogue(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(line) for line in value]


class VideoPlan(BaseModel):
    """The `video` object of a script plan"""
    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1)
    hook: Optional[str] = None
    caption: Optional[str] = None
    music_type: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)
    layout: List[Segment] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("video.title must not be blank")
        return value

    @model_validator(mode="after")
    def check_segments(self) -> "VideoPlan":
        seen = set()
        for segment in self.layout:
            if segment.id in seen:
                raise ValueError(f"Duplicate segment id: {segment.id}")
            seen.add(segment.id)

        position = 0
        for segment in self.layout:
            for image in segment.images:
                image.position = position
                position += 1
        return self


class ScriptPlan(BaseModel):
    """Complete plan returned by the language model"""
    model_config = ConfigDict(extra="allow")

    niche: Optional[str] = None
    topic: Optional[str] = None
    random_seed: Optional[Any] = None
    video: VideoPlan

    @property
    def segments(self) -> List[Segment]:
        return self.video.layout

    def image_prompts(self) -> List[str]:
        """Every image prompt across all segments, in layout order"""
        return [image.prompt for segment in self.segments for image in segment.images]

    def dialogue_lines(self) -> List[str]:
        """Every dialogue line across all segments, in layout order"""
        return [line for segment in self.segments for line in segment.dialogue]

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
