# composer.py
"""
Image composition provider (Gemini).

Fetches the subject photo and the garment photo, sends both inline together
with the instruction text, and returns the bytes of the first image the model
produces. The Gemini client is built on first use and reused.
"""

import functools
import logging
from io import BytesIO
from typing import Tuple

import httpx
from google import genai
from google.genai import types
from PIL import Image

from errors import CompositionFailed
from settings import settings

log = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


@functools.lru_cache(maxsize=1)
def get_client() -> genai.Client:
    if not settings.GEMINI_API_KEY:
        raise CompositionFailed.not_configured("Image generation")
    return genai.Client(api_key=settings.GEMINI_API_KEY)


async def fetch_image(client: httpx.AsyncClient, url: str) -> Tuple[bytes, str]:
    """Downloads an image, returning its bytes and MIME type."""
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        log.error(f"Image fetch failed ({e.response.status_code}) for {url}")
        raise CompositionFailed(f"Could not fetch image ({e.response.status_code}).")
    except httpx.RequestError as e:
        log.error(f"Network error fetching image {url}: {e}")
        raise CompositionFailed("Could not fetch image.")

    mime_type = response.headers.get("content-type", DEFAULT_MIME_TYPE).split(";")[0].strip()
    return response.content, mime_type or DEFAULT_MIME_TYPE


def extract_image(response) -> bytes:
    """Returns the first inline image payload of a generate_content response."""
    for candidate in response.candidates or []:
        content = candidate.content
        if not content or not content.parts:
            continue
        for part in content.parts:
            if part.inline_data and part.inline_data.data:
                return part.inline_data.data
    raise CompositionFailed("Image generation returned no image.")


def verify_image(data: bytes):
    try:
        Image.open(BytesIO(data)).verify()
    except Exception:
        log.error("Gemini returned invalid image data.")
        raise CompositionFailed("Image generation returned invalid image data.")


async def compose_try_on(user_image_url: str, clothing_image_url: str, instruction: str) -> bytes:
    """Generates the try-on composite and returns its image bytes."""
    client = get_client()

    async with httpx.AsyncClient(timeout=settings.IMAGE_FETCH_TIMEOUT, follow_redirects=True) as http:
        user_image, user_mime = await fetch_image(http, user_image_url)
        clothing_image, clothing_mime = await fetch_image(http, clothing_image_url)

    try:
        response = await client.aio.models.generate_content(
            model=settings.GEMINI_IMAGE_MODEL,
            contents=[
                types.Content(
                    role="user",
                    parts=[
                        types.Part.from_bytes(data=user_image, mime_type=user_mime),
                        types.Part.from_bytes(data=clothing_image, mime_type=clothing_mime),
                        types.Part.from_text(text=instruction),
                    ],
                )
            ],
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
    except Exception as e:
        log.error(f"Gemini generate_content failed: {e}", exc_info=True)
        raise CompositionFailed()

    image = extract_image(response)
    verify_image(image)
    return image
