"""
Shared fixtures and fakes.

Settings are read from the environment once (cached), so the overrides
below must be in place before any reelsmith module is imported.
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="reelsmith-tests-"))
os.environ.setdefault("VIDEOS_DIR", str(_TEST_ROOT / "videos"))
os.environ.setdefault("MUSIC_DIR", str(_TEST_ROOT / "music"))
os.environ.setdefault("IMAGE_REQUEST_DELAY", "0")
os.environ.setdefault("SPEECH_LINE_DELAY", "0")
os.environ.setdefault("GEMINI_API_KEY", "")
os.environ.setdefault("TOGETHER_API_KEY", "")

import pytest

from reelsmith.models.job import VideoResult
from reelsmith.services.event_broker import EventBroker
from reelsmith.services.proxy_pool import ProxyRecord
from reelsmith.services.toolchain import FFmpegToolchain
from reelsmith.utils.cancellation import CancellationToken
from reelsmith.utils.exceptions import ImageProviderError, SpeechEvasionError, ToolchainError
from reelsmith.utils.logger import LogSink


# =============================================================================
# Fakes
# =============================================================================

class RecordingSink(LogSink):
    """Log sink that keeps every line for assertions"""

    def __init__(self):
        super().__init__()
        self.lines: List[str] = []

    def _emit(self, level: int, message: str):
        self.lines.append(message)


class FakeToolchain(FFmpegToolchain):
    """
    Records ffmpeg invocations instead of running them.

    Every run touches its output path (the last argument) so later stages
    find the file on disk. Probed durations come from `durations`, keyed by
    file name, falling back to `default_duration`.
    """

    def __init__(self, durations: Optional[Dict[str, float]] = None, default_duration: float = 2.0):
        super().__init__(ffmpeg_binary="ffmpeg", ffprobe_binary="ffprobe")
        self.commands: List[List[str]] = []
        self.labels: List[str] = []
        self.durations = durations or {}
        self.default_duration = default_duration
        self.audio_streams = True
        self.fail_on_label: Optional[str] = None
        self.on_run = None

    async def run(self, cmd, token, log=None, duration=None, label="FFmpeg"):
        token.raise_if_cancelled()
        self.commands.append(list(cmd))
        self.labels.append(label)
        if self.on_run is not None:
            self.on_run(label, cmd)
        if self.fail_on_label and self.fail_on_label in label:
            raise ToolchainError(f"{label} failed with exit code 1", command=" ".join(cmd), stderr="boom")
        token.raise_if_cancelled()
        Path(cmd[-1]).parent.mkdir(parents=True, exist_ok=True)
        Path(cmd[-1]).write_bytes(b"media")

    async def probe_duration(self, path: str) -> float:
        return self.durations.get(Path(path).name, self.default_duration)

    async def has_audio_stream(self, path: str) -> bool:
        return self.audio_streams


class FakeImageClient:
    """Image provider whose prompts fail a configured number of times"""

    def __init__(self, failures: Optional[Dict[str, int]] = None):
        self.failures = dict(failures or {})
        self.calls: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.calls.append(prompt)
        remaining = self.failures.get(prompt, 0)
        if remaining:
            self.failures[prompt] = remaining - 1
            raise ImageProviderError("Invalid API response: No data found.", prompt=prompt)
        return f"https://images.example/{len(self.calls)}.jpg"

    async def download(self, url: str, output_path: str):
        Path(output_path).write_bytes(b"jpeg")


class FakeSpeechClient:
    """Speech provider that rejects a configured number of requests first"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.requests: List[str] = []
        self.proxies: List[str] = []

    async def request_speech(self, text: str, voice: str, proxy: ProxyRecord) -> str:
        self.requests.append(text)
        self.proxies.append(proxy.address)
        if self.failures:
            self.failures -= 1
            raise SpeechEvasionError("Error generating TTS (code 1)", proxy=proxy.address)
        return f"mp3-{len(self.requests)}"

    async def download(self, file_ref: str, output_path: str, proxy: ProxyRecord):
        Path(output_path).write_bytes(b"mp3")


class FakeProxySource:
    """Proxy list with a fixed set of hosts that validate"""

    def __init__(self, lines: List[str], alive: Optional[List[str]] = None):
        self.list_url = "https://lists.example/https.txt"
        self.lines = lines
        self.alive = set(alive or [])
        self.fetches = 0
        self.probed: List[str] = []

    async def fetch_list(self) -> str:
        self.fetches += 1
        return "\n".join(self.lines)

    async def probe(self, record: ProxyRecord) -> Optional[str]:
        self.probed.append(record.address)
        if record.host in self.alive:
            return record.host
        raise ConnectionError("proxy refused connection")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def broker():
    return EventBroker()


@pytest.fixture
def token():
    return CancellationToken("test-job")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def video_result():
    return VideoResult(
        final_video_path="/tmp/out/demo_with_music.mp4",
        output_dir="/tmp/out",
        video_url="/videos/demo/demo_with_music.mp4",
        title="Demo",
    )


def make_plan(segment_count: int = 6, title: str = "Your Spirit Animal") -> dict:
    """ScriptPlan document with one dialogue line and one image per segment"""
    return {
        "niche": "Astrology",
        "topic": "Spirit animals",
        "random_seed": 4242,
        "video": {
            "title": title,
            "hook": "Ever wondered?",
            "caption": "Find yours",
            "music_type": "mystical",
            "hashtags": ["#spirit"],
            "layout": [
                {
                    "id": f"segment_{n}",
                    "timestamp": f"00:00:{n * 3:02d}",
                    "segment_title": f"Part {n}",
                    "dialogue": [f"Line number {n}."],
                    "images": [
                        {
                            "id": f"image_{n}",
                            "prompt": f"A glowing animal spirit, scene {n}",
                            "duration": 3,
                            "start_time": "00:00:00",
                            "end_time": "00:00:03",
                        }
                    ],
                    "transition": "fade",
                }
                for n in range(1, segment_count + 1)
            ],
        },
    }


@pytest.fixture
def plan_data():
    return make_plan()
