"""
Image synthesis with capped per-prompt retry.
"""

import asyncio

import pytest

from conftest import FakeImageClient
from reelsmith.services.image_synthesizer import ImageSynthesizer
from reelsmith.utils.cancellation import CancellationToken
from reelsmith.utils.exceptions import APIKeyError, JobCancelledError


def make_synthesizer(client):
    return ImageSynthesizer(
        client=client,
        max_prompts=9,
        max_attempts=10,
        request_delay=0,
        retry_delay=0,
    )


def test_only_first_nine_prompts_are_attempted_and_exhausted_prompt_is_skipped(tmp_path, token, sink):
    """
    GIVEN: 12 prompts, the third of which fails on every attempt
    WHEN: the batch is synthesized
    THEN: prompts 1-9 are attempted, the third gets exactly 10 tries and is skipped
    """
    prompts = [f"prompt {n}" for n in range(1, 13)]
    client = FakeImageClient(failures={"prompt 3": 100})
    synthesizer = make_synthesizer(client)

    images = asyncio.run(synthesizer.synthesize_all(prompts, str(tmp_path), token, sink))

    assert set(client.calls) == {f"prompt {n}" for n in range(1, 10)}
    assert client.calls.count("prompt 3") == 10
    assert [image.source_prompt_index for image in images] == [0, 1, 3, 4, 5, 6, 7, 8]
    assert not (tmp_path / "image_3.jpg").exists()
    assert (tmp_path / "image_9.jpg").exists()
    assert any("Max retries reached for prompt: prompt 3" in line for line in sink.lines)


def test_transient_failures_are_retried(tmp_path, token):
    client = FakeImageClient(failures={"sunset": 4})
    synthesizer = make_synthesizer(client)

    images = asyncio.run(synthesizer.synthesize_all(["sunset"], str(tmp_path), token))

    assert client.calls.count("sunset") == 5
    assert len(images) == 1
    assert images[0].file_path.endswith("image_1.jpg")


def test_cancellation_between_prompts_stops_the_batch(tmp_path):
    token = CancellationToken("job")

    class CancellingClient(FakeImageClient):
        async def download(self, url, output_path):
            await super().download(url, output_path)
            token.cancel()

    client = CancellingClient()
    synthesizer = make_synthesizer(client)

    with pytest.raises(JobCancelledError):
        asyncio.run(synthesizer.synthesize_all(["a", "b", "c"], str(tmp_path), token))
    assert client.calls == ["a"]


def test_cancellation_is_not_retried(tmp_path):
    token = CancellationToken("job")

    class CancelDuringRequest(FakeImageClient):
        async def generate(self, prompt):
            self.calls.append(prompt)
            token.cancel()
            raise ConnectionError("socket closed")

    client = CancelDuringRequest()
    synthesizer = make_synthesizer(client)

    with pytest.raises(JobCancelledError):
        asyncio.run(synthesizer.synthesize_all(["a"], str(tmp_path), token))
    assert client.calls == ["a"]


def test_missing_api_key_fails_the_batch_without_retrying(tmp_path, token):
    class NoKeyClient(FakeImageClient):
        async def generate(self, prompt):
            self.calls.append(prompt)
            raise APIKeyError("Together AI")

    client = NoKeyClient()
    synthesizer = make_synthesizer(client)

    with pytest.raises(APIKeyError):
        asyncio.run(synthesizer.synthesize_all(["a", "b", "c"], str(tmp_path), token))
    assert client.calls == ["a"]
