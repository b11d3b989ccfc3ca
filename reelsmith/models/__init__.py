"""Models package initialization"""
from .job import Job, JobStatus, JobCreate, JobAccepted, JobEvent, JobSummary, VideoResult
from .plan import ScriptPlan, VideoPlan, Segment, ImageSpec
from .assets import ImageAsset, AudioAsset, SubtitleFile, SubtitleCue

__all__ = [
    "Job",
    "JobStatus",
    "JobCreate",
    "JobAccepted",
    "JobEvent",
    "JobSummary",
    "VideoResult",
    "ScriptPlan",
    "VideoPlan",
    "Segment",
    "ImageSpec",
    "ImageAsset",
    "AudioAsset",
    "SubtitleFile",
    "SubtitleCue"
]
