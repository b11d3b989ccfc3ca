"""
Script plan parsing and the Gemini-backed writer.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import make_plan
from reelsmith.models.plan import ScriptPlan
from reelsmith.services.script_writer import ScriptWriter, parse_script_plan
from reelsmith.utils.cancellation import CancellationToken
from reelsmith.utils.exceptions import APIKeyError, JobCancelledError, ScriptPlanError


# =============================================================================
# parse_script_plan
# =============================================================================

def test_parses_raw_json(plan_data):
    plan = parse_script_plan(json.dumps(plan_data))

    assert isinstance(plan, ScriptPlan)
    assert plan.video.title == "Your Spirit Animal"
    assert len(plan.segments) == 6


def test_parses_fenced_json(plan_data):
    text = "Here you go:\n```json\n" + json.dumps(plan_data, indent=2) + "\n```\nEnjoy!"

    plan = parse_script_plan(text)

    assert plan.video.music_type == "mystical"


@pytest.mark.parametrize("text", ["", "   ", "not json at all", "```json\n{broken\n```"])
def test_rejects_unparseable_text(text):
    with pytest.raises(ScriptPlanError):
        parse_script_plan(text)


@pytest.mark.parametrize(
    "document",
    [
        {"niche": "x"},
        {"video": {"layout": []}},
        {"video": {"title": ""}},
        ["not", "an", "object"],
    ],
)
def test_requires_video_title(document):
    with pytest.raises(ScriptPlanError) as exc_info:
        parse_script_plan(json.dumps(document))
    assert "video.title" in exc_info.value.message


def test_rejects_duplicate_segment_ids(plan_data):
    plan_data["video"]["layout"][1]["id"] = plan_data["video"]["layout"][0]["id"]

    with pytest.raises(ScriptPlanError):
        parse_script_plan(json.dumps(plan_data))


@pytest.mark.parametrize("segment_id", ["../escape", "..", "nested/dir", "back\\slash", "  "])
def test_rejects_segment_ids_that_are_not_plain_file_names(plan_data, segment_id):
    plan_data["video"]["layout"][0]["id"] = segment_id

    with pytest.raises(ScriptPlanError):
        parse_script_plan(json.dumps(plan_data))


def test_plan_flattens_prompts_and_dialogue_in_layout_order():
    data = make_plan(segment_count=3)
    data["video"]["layout"][1]["dialogue"] = "A single string line."
    data["video"]["layout"][2]["images"].append({"id": "image_extra", "prompt": "extra"})

    plan = parse_script_plan(json.dumps(data))

    assert plan.image_prompts() == [
        "A glowing animal spirit, scene 1",
        "A glowing animal spirit, scene 2",
        "A glowing animal spirit, scene 3",
        "extra",
    ]
    assert plan.dialogue_lines() == ["Line number 1.", "A single string line.", "Line number 3."]
    assert [image.asset_number for segment in plan.segments for image in segment.images] == [1, 2, 3, 4]


def test_unknown_keys_are_preserved(plan_data):
    plan_data["video"]["voice_style"] = "calm"

    plan = parse_script_plan(json.dumps(plan_data))

    assert plan.to_dict()["video"]["voice_style"] == "calm"


# =============================================================================
# ScriptWriter
# =============================================================================

def make_client(text):
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text=text)
    return client


def test_write_sends_prompt_with_seed_and_returns_plan(plan_data, token, sink):
    client = make_client("```json\n" + json.dumps(plan_data) + "\n```")
    writer = ScriptWriter(client=client)

    plan = asyncio.run(writer.write("  spirit animals by birth month  ", token, sink))

    assert plan.video.title == "Your Spirit Animal"
    kwargs = client.models.generate_content.call_args.kwargs
    assert kwargs["contents"].startswith("spirit animals by birth month\nRANDOM SEED: ")
    assert kwargs["config"]["response_mime_type"] == "application/json"
    assert "music_type" in kwargs["config"]["system_instruction"]


def test_write_rejects_empty_model_response(token):
    writer = ScriptWriter(client=make_client(""))

    with pytest.raises(ScriptPlanError):
        asyncio.run(writer.write("anything", token))


def test_write_requires_api_key_without_injected_client(token):
    writer = ScriptWriter()
    writer.settings = writer.settings.model_copy(update={"gemini_api_key": ""})

    with pytest.raises(APIKeyError):
        asyncio.run(writer.write("anything", token))


def test_write_checks_cancellation_first(plan_data):
    token = CancellationToken("job")
    token.cancel()
    client = make_client(json.dumps(plan_data))

    with pytest.raises(JobCancelledError):
        asyncio.run(ScriptWriter(client=client).write("anything", token))
    client.models.generate_content.assert_not_called()
