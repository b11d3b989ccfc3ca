"""
Segment assembly: asset resolution and the ffmpeg command it builds.
"""

import asyncio

import pytest

from conftest import FakeToolchain
from reelsmith.models.assets import AudioAsset, ImageAsset, SubtitleFile
from reelsmith.models.plan import Segment
from reelsmith.services.segment_assembler import SegmentAssembler
from reelsmith.services.workspace import JobWorkspace
from reelsmith.utils.exceptions import AssetResolutionError, ToolchainError


@pytest.fixture
def workspace(tmp_path):
    return JobWorkspace(str(tmp_path), "Demo Title", "abcdef123456").prepare({"video": {"title": "Demo Title"}})


def write_images(workspace, count):
    assets = []
    for index in range(count):
        path = workspace.images_dir / f"image_{index + 1}.jpg"
        path.write_bytes(b"jpeg")
        assets.append(ImageAsset(source_prompt_index=index, file_path=str(path)))
    return assets


def write_audio(workspace, lines):
    assets = []
    for index, line in enumerate(lines):
        path = workspace.audio_dir / f"audio_{index + 1}.mp3"
        path.write_bytes(b"mp3")
        assets.append(AudioAsset(line, str(path), 2.0))
    return assets


def test_build_segment_merges_audio_and_splits_time_across_images(workspace, token, sink):
    toolchain = FakeToolchain(durations={"merged_audio_s1.mp3": 6.0})
    assembler = SegmentAssembler(toolchain)
    segment = Segment(
        id="s1",
        dialogue=["One.", "Two."],
        images=[{"id": "image_1", "prompt": "a"}, {"id": "image_2", "prompt": "b"}],
    )
    images = write_images(workspace, 2)
    audio = write_audio(workspace, ["One.", "Two."])
    subtitles_path = workspace.subtitles_dir / "s1.srt"
    subtitles_path.write_text("1\n00:00:00,000 --> 00:00:02,000\nOne.\n", encoding="utf-8")

    output = asyncio.run(
        assembler.build_segment(
            segment, images, audio, SubtitleFile("s1", str(subtitles_path)), workspace, token, sink
        )
    )

    assert output == str(workspace.segments_dir / "s1" / "s1.mp4")
    merge_cmd, render_cmd = toolchain.commands
    assert merge_cmd[-1].endswith("merged_audio_s1.mp3")
    assert merge_cmd[merge_cmd.index("-filter_complex") + 1] == "[0:a][1:a]concat=n=2:v=0:a=1[a]"

    assert render_cmd.count("-loop") == 2
    assert render_cmd[render_cmd.index("-t") + 1] == "3.000"
    graph = render_cmd[render_cmd.index("-filter_complex") + 1]
    assert "[v0][v1]concat=n=2:v=1:a=0[vcat]" in graph
    assert "subtitles=" in graph and "force_style=" in graph
    assert render_cmd[render_cmd.index("-map") + 1] == "[vout]"
    assert "2:a" in render_cmd
    assert "libx264" in render_cmd and "aac" in render_cmd


def test_single_line_uses_its_audio_file_directly(workspace, token):
    toolchain = FakeToolchain()
    assembler = SegmentAssembler(toolchain)
    segment = Segment(id="s2", dialogue=["Only."], images=[{"id": "image_1", "prompt": "a"}])

    asyncio.run(
        assembler.build_segment(
            segment, write_images(workspace, 1), write_audio(workspace, ["Only."]), None, workspace, token
        )
    )

    assert toolchain.labels == ["Segment s2 generation"]
    render_cmd = toolchain.commands[0]
    assert str(workspace.audio_dir / "audio_1.mp3") in render_cmd
    assert render_cmd[render_cmd.index("-map") + 1] == "[vcat]"


def test_image_resolved_by_id_number_not_position(workspace):
    assembler = SegmentAssembler(FakeToolchain())
    images = write_images(workspace, 3)
    segment = Segment(id="s3", dialogue=["x"], images=[{"id": "image-3", "prompt": "c"}])

    assert assembler.resolve_images(segment, images) == [images[2].file_path]


def test_skipped_image_fails_resolution(workspace):
    assembler = SegmentAssembler(FakeToolchain())
    images = [asset for asset in write_images(workspace, 3) if asset.source_prompt_index != 1]
    segment = Segment(id="s4", dialogue=["x"], images=[{"id": "image_2", "prompt": "b"}])

    with pytest.raises(AssetResolutionError) as exc_info:
        assembler.resolve_images(segment, images)
    assert exc_info.value.details["segment_id"] == "s4"


def test_audio_file_missing_on_disk_fails_resolution(workspace):
    assembler = SegmentAssembler(FakeToolchain())
    audio = [AudioAsset("Gone.", str(workspace.audio_dir / "missing.mp3"), 1.0)]
    segment = Segment(id="s5", dialogue=["Gone."], images=[{"id": "image_1", "prompt": "a"}])

    with pytest.raises(AssetResolutionError):
        assembler.resolve_audio(segment, audio)


def test_narration_without_audio_stream_is_rejected(workspace, token):
    toolchain = FakeToolchain()
    toolchain.audio_streams = False
    assembler = SegmentAssembler(toolchain)
    segment = Segment(id="s6", dialogue=["Silent."], images=[{"id": "image_1", "prompt": "a"}])

    with pytest.raises(ToolchainError):
        asyncio.run(
            assembler.build_segment(
                segment, write_images(workspace, 1), write_audio(workspace, ["Silent."]), None, workspace, token
            )
        )
    assert toolchain.commands == []
