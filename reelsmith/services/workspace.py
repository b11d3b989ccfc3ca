"""
Job Workspace
Per-job directory layout under the videos directory
"""

import json
import re
from pathlib import Path
from typing import Any, Dict

_WHITESPACE = re.compile(r"\s+")
_INVALID = re.compile(r"[^a-z0-9_]")


def sanitize_filename(name: str) -> str:
    """Lowercase, whitespace to underscores, drop everything else that is not [a-z0-9_]"""
    return _INVALID.sub("", _WHITESPACE.sub("_", name.lower()))


class JobWorkspace:
    """
    Working directory of one job:

        <videos_dir>/<sanitized title>_<job id prefix>/
            video.json
            images/  audio/  subtitles/  segments/
    """

    def __init__(self, videos_dir: str, title: str, job_id: str):
        self.slug = sanitize_filename(title) or "video"
        self.name = f"{self.slug}_{job_id[:8]}"
        self.root = Path(videos_dir) / self.name
        self.images_dir = self.root / "images"
        self.audio_dir = self.root / "audio"
        self.subtitles_dir = self.root / "subtitles"
        self.segments_dir = self.root / "segments"

    def prepare(self, plan: Dict[str, Any]) -> "JobWorkspace":
        """Create the directory tree and persist the plan as video.json"""
        for directory in (self.root, self.images_dir, self.audio_dir, self.subtitles_dir, self.segments_dir):
            directory.mkdir(parents=True, exist_ok=True)

        with open(self.root / "video.json", "w", encoding="utf-8") as plan_file:
            json.dump(plan, plan_file, indent=2, ensure_ascii=False)
        return self

    def segment_dir(self, segment_id: str) -> Path:
        path = self.segments_dir / segment_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def final_video_path(self) -> Path:
        return self.root / f"{self.slug}.mp4"

    @property
    def final_with_music_path(self) -> Path:
        return self.root / f"{self.slug}_with_music.mp4"
