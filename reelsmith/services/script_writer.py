"""
Script Writer
Uses Google Gemini to turn a free-text idea into a structured script plan
"""

import asyncio
import json
import random
import re
from typing import Any, Optional

from pydantic import ValidationError

from ..config import get_settings
from ..models.plan import ScriptPlan
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import APIKeyError, ScriptPlanError
from ..utils.logger import LogSink, get_logger

logger = get_logger()

_FENCED_JSON = re.compile(r"```(?:json\s*)?\n?([\s\S]*?)\n?```", re.IGNORECASE)

MUSIC_TYPES = [
    "action", "adventure", "ambient", "calm", "cinematic", "dark", "emotional",
    "energetic", "epic", "fantasy", "happy", "horror", "inspirational", "medieval",
    "mystical", "relaxing", "romantic", "sad", "suspense", "uplifting",
]

SYSTEM_PROMPT = """You write short-form vertical videos for Instagram Reels and YouTube Shorts.

From the user's idea, determine the niche and an engaging topic, then produce a complete
video plan. Use the random seed to make the content unique.

The dialogue is read by a text-to-speech engine that understands a few SSML tags:
<break time="1s"/>, <emphasis level="strong">...</emphasis> and
<prosody rate="slow">...</prosody>. Tags must be properly opened and closed.
Leave a space after each full stop. Do not change the pitch and do not use emojis.

The image prompts are rendered by the Flux model. Each prompt must describe the setting,
action or emotion, color palette, artistic style, texture and detail, contrast,
saturation, environment, background and foreground.

Respond with a single JSON object of this shape:
{{
  "niche": "string",
  "topic": "string",
  "random_seed": number,
  "video": {{
    "title": "catchy title",
    "hook": "what grabs attention in the first three seconds",
    "caption": "short description that invites engagement",
    "layout": [
      {{
        "id": "segment_1",
        "timestamp": "HH:MM:SS",
        "segment_title": "string",
        "dialogue": ["one short line"],
        "images": [
          {{
            "id": "image_1",
            "prompt": "detailed Flux prompt",
            "duration": 3,
            "start_time": "HH:MM:SS",
            "end_time": "HH:MM:SS"
          }}
        ],
        "transition": "fade"
      }}
    ],
    "music_type": "one of: {music_types}",
    "hashtags": ["#tag"]
  }}
}}

Rules:
- Use 6 to 8 segments so the video reaches a conclusion.
- Each segment has exactly one dialogue line; it may be only a few words.
- Image ids are numbered across the whole video: image_1, image_2, ...
- Follow the user's idea closely and be creative.
- Output only the JSON object, with no text before or after it."""


def parse_script_plan(text: str) -> ScriptPlan:
    """
    Parse a language model reply into a ScriptPlan.

    The reply may be raw JSON or JSON wrapped in a markdown code fence.

    Raises:
        ScriptPlanError: no parseable JSON, or the plan has no video title
    """
    if not text or not text.strip():
        raise ScriptPlanError("Empty response from language model")

    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as initial_error:
        match = _FENCED_JSON.search(text)
        if not match:
            raise ScriptPlanError(f"Invalid JSON input: {initial_error}") from initial_error
        try:
            data = json.loads(match.group(1).strip())
        except json.JSONDecodeError as fenced_error:
            raise ScriptPlanError(
                f"Error parsing JSON from extracted code block: {fenced_error}"
            ) from fenced_error

    if not isinstance(data, dict) or not isinstance(data.get("video"), dict) or not data["video"].get("title"):
        raise ScriptPlanError('Invalid JSON data: Missing required "video" or "video.title" property.')

    try:
        return ScriptPlan.model_validate(data)
    except ValidationError as exc:
        raise ScriptPlanError(
            f"Script plan failed validation: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False, include_context=False)
        ) from exc


class ScriptWriter:
    """Generates script plans with Gemini"""

    def __init__(self, client: Any = None):
        self.settings = get_settings()
        self._client = client

    def _ensure_client(self):
        """Lazy load the Gemini client"""
        if self._client is not None:
            return

        if not self.settings.gemini_api_key:
            raise APIKeyError("Google Gemini")

        from google import genai
        self._client = genai.Client(api_key=self.settings.gemini_api_key)
        logger.info("Gemini client initialized")

    def build_messages(self, prompt: str, seed: int):
        system = SYSTEM_PROMPT.format(music_types=", ".join(MUSIC_TYPES))
        user = f"{prompt.strip()}\nRANDOM SEED: {seed}"
        return system, user

    async def write(
        self,
        prompt: str,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> ScriptPlan:
        """
        Ask the model for a plan and validate it.

        Returns:
            The validated ScriptPlan
        """
        log = log or LogSink()
        token.raise_if_cancelled()
        self._ensure_client()

        seed = random.randint(1, 1_000_000)
        system, user = self.build_messages(prompt, seed)
        log.info("Generating script plan...")

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None,
            lambda: self._client.models.generate_content(
                model=self.settings.gemini_model,
                contents=user,
                config={
                    "system_instruction": system,
                    "temperature": self.settings.script_temperature,
                    "top_p": self.settings.script_top_p,
                    "top_k": self.settings.script_top_k,
                    "response_mime_type": "application/json",
                }
            )
        )
        token.raise_if_cancelled()

        text = getattr(response, "text", None)
        if not text:
            raise ScriptPlanError("Gemini returned empty response (possibly blocked)")

        plan = parse_script_plan(text)
        log.info(
            f"Script plan ready: \"{plan.video.title}\" with {len(plan.segments)} segments"
        )
        return plan
