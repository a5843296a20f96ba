"""OpenAI-backed vision client: the analyze and generate-image capabilities.

Built once at application startup and injected into the enrichment service;
nothing here is constructed lazily on first use. SDK-level retries are
disabled because the enrichment service applies its own retry policy.
"""

import base64
import logging
from typing import Optional, Sequence

from openai import AsyncOpenAI

from memoryreel.config import Settings
from memoryreel.errors import ImageGenerationError
from memoryreel.models import Sample

logger = logging.getLogger(__name__)

# Aspect-ratio hints mapped to the closest size the image endpoint accepts
ASPECT_SIZES = {
    "1:1": "1024x1024",
    "3:4": "1024x1536",
    "2:3": "1024x1536",
    "4:3": "1536x1024",
    "16:9": "1536x1024",
}


class VisionClient:
    """Thin async wrapper around AsyncOpenAI for multimodal calls."""

    def __init__(
        self,
        client: AsyncOpenAI,
        analysis_model: str,
        image_model: str,
        timeout: float = 120.0,
    ):
        self.client = client
        self.analysis_model = analysis_model
        self.image_model = image_model
        self.timeout = timeout

    async def analyze(self, images: Sequence[Sample], prompt: str, schema: dict) -> str:
        """Send all images plus a prompt in one request; return the raw JSON text.

        ``schema`` is passed as a strict JSON-schema response format.
        """
        content: list[dict] = [
            {"type": "image_url", "image_url": {"url": image.data_uri, "detail": "low"}}
            for image in images
        ]
        content.append({"type": "text", "text": prompt})

        response = await self.client.chat.completions.create(
            model=self.analysis_model,
            messages=[{"role": "user", "content": content}],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "media_metadata", "schema": schema, "strict": True},
            },
            temperature=0.7,
            max_tokens=1024,
            timeout=self.timeout,
        )

        usage = response.usage
        if usage:
            logger.info(
                f"OpenAI {self.analysis_model}: {usage.prompt_tokens} in + "
                f"{usage.completion_tokens} out tokens ({len(images)} images)"
            )

        return response.choices[0].message.content or ""

    async def generate_image(
        self,
        reference: Sample,
        prompt: str,
        aspect_ratio: str = "3:4",
    ) -> bytes:
        """Generate one image conditioned on a reference image; return PNG bytes."""
        extension = reference.mime_type.split("/")[-1] or "jpeg"
        response = await self.client.images.edit(
            model=self.image_model,
            image=(f"reference.{extension}", reference.data, reference.mime_type),
            prompt=prompt,
            size=ASPECT_SIZES.get(aspect_ratio, "1024x1536"),
            timeout=self.timeout,
        )

        data = response.data[0].b64_json if response.data else None
        if not data:
            raise ImageGenerationError("No image generated")
        return base64.b64decode(data)

    async def close(self) -> None:
        """Close the underlying HTTP client (call on application shutdown)."""
        await self.client.close()
        logger.debug("Closed OpenAI client")


def build_vision_client(config: Settings, api_key: Optional[str] = None) -> VisionClient:
    """Create the shared vision client from settings.

    Raises:
        ValueError: no API key configured
    """
    key = api_key or config.OPENAI_API_KEY
    if not key:
        raise ValueError(
            "OPENAI_API_KEY is required for AI enrichment. "
            "Set it in environment variables."
        )

    client = AsyncOpenAI(
        api_key=key,
        base_url=config.OPENAI_BASE_URL or None,
        timeout=config.AI_REQUEST_TIMEOUT,
        max_retries=0,
    )
    logger.debug("Created OpenAI client")
    return VisionClient(
        client,
        analysis_model=config.ANALYSIS_MODEL,
        image_model=config.IMAGE_MODEL,
        timeout=config.AI_REQUEST_TIMEOUT,
    )
