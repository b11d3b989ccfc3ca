"""
Speech Synthesis Service
ttsmp3 text-to-speech through rotating proxies with randomized request fingerprints
"""

import asyncio
import random
import uuid
from pathlib import Path
from typing import Dict, Optional, Protocol

import aiohttp

from ..config import get_settings
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import PoolExhaustedError, SpeechDownloadError, SpeechEvasionError
from ..utils.logger import LogSink, get_logger
from .proxy_pool import ProxyPool, ProxyRecord, get_proxy_pool

logger = get_logger()

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:132.0) Gecko/20100101 Firefox/132.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1",
]

BASE_HEADERS = {
    "accept": "*/*",
    "accept-language": "en-US,en;q=0.7",
    "content-type": "application/x-www-form-urlencoded",
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-origin",
    "sec-gpc": "1",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def random_ip() -> str:
    return ".".join(str(random.randint(0, 255)) for _ in range(4))


def build_request_headers(base_url: str) -> Dict[str, str]:
    """Fresh fingerprint for every request"""
    return {
        **BASE_HEADERS,
        "Referer": f"{base_url}/",
        "User-Agent": random.choice(USER_AGENTS),
        "X-Request-ID": uuid.uuid4().hex[:13],
        "X-Forwarded-For": random_ip(),
    }


class SpeechClient(Protocol):
    """Network side of speech synthesis"""

    async def request_speech(self, text: str, voice: str, proxy: ProxyRecord) -> str:
        """Ask the provider for a rendition of `text`; returns its file reference."""
        ...

    async def download(self, file_ref: str, output_path: str, proxy: ProxyRecord):
        ...


class TtsMp3Client:
    """aiohttp client for the ttsmp3 endpoints"""

    def __init__(
        self,
        base_url: str = "https://ttsmp3.com",
        timeout: float = 30.0,
        proxy_scheme: str = "http",
        verify_ssl: bool = False
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.proxy_scheme = proxy_scheme
        self.verify_ssl = verify_ssl

    async def request_speech(self, text: str, voice: str, proxy: ProxyRecord) -> str:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                f"{self.base_url}/makemp3_new.php",
                data={"msg": text, "lang": voice, "source": "ttsmp3"},
                headers=build_request_headers(self.base_url),
                proxy=proxy.url(self.proxy_scheme),
                ssl=self.verify_ssl
            ) as response:
                response.raise_for_status()
                payload = await response.json(content_type=None)

        if not isinstance(payload, dict):
            raise SpeechEvasionError("Unexpected speech response", proxy=proxy.address)

        error_code = payload.get("Error")
        if error_code not in (0, "0"):
            raise SpeechEvasionError(
                f"Error generating TTS (code {error_code})",
                proxy=proxy.address,
                error_code=error_code
            )

        file_ref = payload.get("MP3")
        if not file_ref:
            raise SpeechEvasionError("Speech response has no file reference", proxy=proxy.address)
        return file_ref

    async def download(self, file_ref: str, output_path: str, proxy: ProxyRecord):
        timeout = aiohttp.ClientTimeout(total=self.timeout * 4)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                f"{self.base_url}/dlmp3.php",
                params={"mp3": file_ref, "location": "direct"},
                headers=build_request_headers(self.base_url),
                proxy=proxy.url(self.proxy_scheme),
                ssl=self.verify_ssl
            ) as response:
                response.raise_for_status()
                with open(output_path, "wb") as output_file:
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        output_file.write(chunk)


class SpeechSynthesizer:
    """Turns one line of dialogue into a downloaded audio file"""

    def __init__(
        self,
        pool: Optional[ProxyPool] = None,
        client: Optional[SpeechClient] = None,
        voice: Optional[str] = None,
        retry_delay: Optional[float] = None
    ):
        settings = get_settings()
        self.pool = pool or get_proxy_pool()
        self.client = client or TtsMp3Client(
            base_url=settings.tts_base_url,
            timeout=settings.speech_request_timeout,
            proxy_scheme=settings.proxy_scheme,
            verify_ssl=settings.proxy_verify_ssl,
        )
        self.voice = voice or settings.tts_voice
        self.retry_delay = settings.speech_retry_delay if retry_delay is None else retry_delay

    async def synthesize(
        self,
        text: str,
        output_path: str,
        token: CancellationToken,
        voice: Optional[str] = None,
        log: Optional[LogSink] = None
    ) -> str:
        """
        Generate speech for `text` and download it to `output_path`.

        Generation is retried without limit, rotating proxies after every
        failure. The download is attempted once; its failure is raised.

        Returns:
            The output path
        """
        log = log or LogSink()
        voice = voice or self.voice
        token.raise_if_cancelled()
        log.info("Starting TTS generation and download...")

        file_ref, proxy = await self._generate(text, voice, token, log)

        token.raise_if_cancelled()
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        log.info("Attempting to download MP3...")
        try:
            await self.client.download(file_ref, output_path, proxy)
        except Exception as exc:
            raise SpeechDownloadError(
                f"Error downloading MP3: {exc}",
                output_path=output_path
            ) from exc

        log.info(f"MP3 downloaded successfully: {output_path}")
        return output_path

    async def _generate(
        self,
        text: str,
        voice: str,
        token: CancellationToken,
        log: LogSink
    ):
        attempt = 0
        while True:
            token.raise_if_cancelled()
            attempt += 1

            try:
                proxy = await self.pool.acquire(token, log)
            except PoolExhaustedError as exc:
                log.warning(f"{exc.message} Fetching a new proxy list...")
                await self._pause()
                continue

            token.raise_if_cancelled()
            try:
                log.info(f"Attempting to generate MP3 (attempt {attempt})...")
                file_ref = await self.client.request_speech(text, voice, proxy)
            except Exception as exc:
                log.warning(f"Failed to generate MP3 via proxy {proxy.address}: {exc}")
                self.pool.mark_current_failed(proxy, log)
                await self._pause()
                continue

            log.info(f"MP3 generated successfully via proxy {proxy.address}")
            return file_ref, proxy

    async def _pause(self):
        if self.retry_delay > 0:
            await asyncio.sleep(self.retry_delay)
        else:
            await asyncio.sleep(0)
