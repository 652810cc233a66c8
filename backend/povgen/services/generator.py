import asyncio
import logging
import uuid
from abc import ABC, abstractmethod

import httpx

from povgen.core.config import settings
from povgen.core.errors import StageError
from povgen.services.narrative import enhance_prompt, subtitle_for

logger = logging.getLogger(__name__)


class GenerationBackend(ABC):
    """The external capabilities behind the generation stages.

    Prompt enhancement and subtitles are derived locally from the keyword
    tables; image and video synthesis are the calls a provider has to serve.
    """

    async def enhance_prompt(self, prompt: str, duration: int) -> str:
        return enhance_prompt(prompt, duration)

    @abstractmethod
    async def generate_image(self, enhanced_prompt: str) -> str: ...

    @abstractmethod
    async def generate_video(self, image_url: str, enhanced_prompt: str, duration: int) -> str: ...

    async def generate_subtitles(self, prompt: str) -> str:
        return subtitle_for(prompt)

    async def aclose(self) -> None:
        return None


class MockGenerationBackend(GenerationBackend):
    """Timed delays and placeholder URLs standing in for model calls."""

    def __init__(
        self,
        enhance_delay: float | None = None,
        image_delay: float | None = None,
        video_delay: float | None = None,
        subtitle_delay: float | None = None,
    ):
        self.enhance_delay = settings.mock_enhance_delay if enhance_delay is None else enhance_delay
        self.image_delay = settings.mock_image_delay if image_delay is None else image_delay
        self.video_delay = settings.mock_video_delay if video_delay is None else video_delay
        self.subtitle_delay = settings.mock_subtitle_delay if subtitle_delay is None else subtitle_delay

    async def enhance_prompt(self, prompt: str, duration: int) -> str:
        await asyncio.sleep(self.enhance_delay)
        return await super().enhance_prompt(prompt, duration)

    async def generate_image(self, enhanced_prompt: str) -> str:
        await asyncio.sleep(self.image_delay)
        return settings.placeholder_image_url

    async def generate_video(self, image_url: str, enhanced_prompt: str, duration: int) -> str:
        await asyncio.sleep(self.video_delay)
        return f"{settings.placeholder_video_base_url.rstrip('/')}/pov-historical-{uuid.uuid4().hex}.mp4"

    async def generate_subtitles(self, prompt: str) -> str:
        await asyncio.sleep(self.subtitle_delay)
        return await super().generate_subtitles(prompt)


class BlackboxGenerationBackend(GenerationBackend):
    """Image and video synthesis through the Blackbox HTTP API."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._http_client = client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=settings.provider_base_url.rstrip("/"),
                timeout=settings.provider_timeout_seconds,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _post(self, path: str, payload: dict) -> dict:
        if not settings.provider_api_key:
            raise StageError("PROVIDER_ERROR", "missing provider api key")
        headers = {"Authorization": f"Bearer {settings.provider_api_key}"}

        last_error = ""
        for attempt in range(settings.provider_max_retries + 1):
            try:
                resp = await self.http_client.post(path, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if resp.is_success:
                    return resp.json()
                last_error = f"HTTP {resp.status_code}: {resp.text[:300]}"
                if resp.status_code < 500:
                    break
            logger.warning("Provider call %s failed (attempt %d): %s", path, attempt + 1, last_error)
        raise StageError("PROVIDER_ERROR", f"{path} failed: {last_error}")

    async def generate_image(self, enhanced_prompt: str) -> str:
        data = await self._post(
            "/image/generate",
            {
                "model": settings.provider_image_model,
                "prompt": enhanced_prompt,
                "width": 1080,
                "height": 1920,
                "steps": 30,
            },
        )
        url = data.get("url")
        if not url:
            raise StageError("PROVIDER_ERROR", "image response has no url")
        return url

    async def generate_video(self, image_url: str, enhanced_prompt: str, duration: int) -> str:
        data = await self._post(
            "/video/generate",
            {
                "model": settings.provider_video_model,
                "prompt": enhanced_prompt,
                "image_url": image_url,
                "duration": duration,
                "quality": "hd",
                "aspect_ratio": "9:16",
            },
        )
        url = data.get("video_url")
        if not url:
            raise StageError("PROVIDER_ERROR", "video response has no video_url")
        return url


def get_generation_backend() -> GenerationBackend:
    provider = settings.generation_provider.lower()
    if provider == "mock":
        return MockGenerationBackend()
    if provider == "blackbox":
        return BlackboxGenerationBackend()
    raise ValueError(f"Unsupported generation provider: {settings.generation_provider}")
