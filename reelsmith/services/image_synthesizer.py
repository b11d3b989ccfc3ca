"""
Image Synthesis Service
Together AI (Flux) image generation with bounded per-prompt retry
"""

import asyncio
from pathlib import Path
from typing import List, Optional, Protocol

import aiohttp

from ..config import get_settings
from ..models.assets import ImageAsset
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import APIKeyError, ImageProviderError, JobCancelledError
from ..utils.logger import LogSink, get_logger
from ..utils.retry import retry_async

logger = get_logger()


class ImageClient(Protocol):
    """Network side of image synthesis"""

    async def generate(self, prompt: str) -> str:
        """Request one image; returns its download URL."""
        ...

    async def download(self, url: str, output_path: str):
        ...


class TogetherImageClient:
    """aiohttp client for the Together AI images endpoint"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.together.xyz/v1",
        model: str = "black-forest-labs/FLUX.1-schnell-Free",
        width: int = 1024,
        height: int = 1024,
        steps: int = 4,
        timeout: float = 120.0
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.width = width
        self.height = height
        self.steps = steps
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise APIKeyError("Together AI")

        body = {
            "model": self.model,
            "prompt": prompt,
            "width": self.width,
            "height": self.height,
            "steps": self.steps,
            "n": 1,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(
                f"{self.base_url}/images/generations",
                json=body,
                headers=headers
            ) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise ImageProviderError(
                        f"Image request failed with HTTP {response.status}",
                        prompt=prompt,
                        status=response.status,
                        response=detail[:300]
                    )
                payload = await response.json(content_type=None)

        data = (payload or {}).get("data") if isinstance(payload, dict) else None
        if not data:
            raise ImageProviderError("Invalid API response: No data found.", prompt=prompt)

        url = data[0].get("url") if isinstance(data[0], dict) else None
        if not url:
            raise ImageProviderError("No image URL found in the API response.", prompt=prompt)
        return url

    async def download(self, url: str, output_path: str):
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                content = await response.read()

        with open(output_path, "wb") as output_file:
            output_file.write(content)


class ImageSynthesizer:
    """Turns a batch of image prompts into downloaded files"""

    def __init__(
        self,
        client: Optional[ImageClient] = None,
        max_prompts: Optional[int] = None,
        max_attempts: Optional[int] = None,
        request_delay: Optional[float] = None,
        retry_delay: Optional[float] = None
    ):
        settings = get_settings()
        self.client = client or TogetherImageClient(
            api_key=settings.together_api_key,
            base_url=settings.together_base_url,
            model=settings.image_model,
            width=settings.image_width,
            height=settings.image_height,
            steps=settings.image_steps,
            timeout=settings.image_request_timeout,
        )
        self.max_prompts = max_prompts or settings.image_max_prompts
        self.max_attempts = max_attempts or settings.image_max_attempts
        self.request_delay = settings.image_request_delay if request_delay is None else request_delay
        self.retry_delay = settings.image_retry_delay if retry_delay is None else retry_delay

    async def synthesize_all(
        self,
        prompts: List[str],
        output_dir: str,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> List[ImageAsset]:
        """
        Generate images for the first `max_prompts` prompts, one at a time.

        Each prompt gets up to `max_attempts` tries and is skipped when they
        are exhausted. Files are named after the prompt position
        (`image_<n>.jpg`).

        Returns:
            Generated assets in completion order
        """
        log = log or LogSink()
        token.raise_if_cancelled()
        Path(output_dir).mkdir(parents=True, exist_ok=True)

        batch = prompts[:self.max_prompts]
        if len(prompts) > len(batch):
            log.info(f"Limiting image batch to the first {len(batch)} of {len(prompts)} prompts")

        images: List[ImageAsset] = []
        for index, prompt in enumerate(batch):
            token.raise_if_cancelled()
            output_path = str(Path(output_dir) / f"image_{index + 1}.jpg")

            def on_retry(exc: Exception, attempt: int, prompt=prompt):
                log.warning(
                    f"Error generating image for prompt: {prompt}. "
                    f"Retries left: {self.max_attempts - attempt} ({exc})"
                )

            generate = retry_async(
                max_retries=self.max_attempts - 1,
                base_delay=self.retry_delay,
                jitter=False,
                fatal_exceptions=(JobCancelledError, APIKeyError),
                on_retry=on_retry,
            )(self._generate_one)

            try:
                await generate(prompt, output_path, token, log)
            except APIKeyError:
                raise
            except ImageProviderError as exc:
                log.error(f"Max retries reached for prompt: {prompt}. Skipping... ({exc.message})")
                continue
            except Exception as exc:
                if token.cancelled:
                    raise
                log.error(f"Max retries reached for prompt: {prompt}. Skipping... ({exc})")
                continue

            images.append(ImageAsset(source_prompt_index=index, file_path=output_path))
            log.info(f"Image saved successfully: {output_path}")

            if self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        return images

    async def _generate_one(
        self,
        prompt: str,
        output_path: str,
        token: CancellationToken,
        log: LogSink
    ):
        token.raise_if_cancelled()
        log.info(f"Generating image for prompt: {prompt}")
        url = await self.client.generate(prompt)
        if not url:
            raise ImageProviderError("No image URL found in the API response.", prompt=prompt)

        token.raise_if_cancelled()
        log.info(f"Downloading image from URL: {url}")
        await self.client.download(url, output_path)
