from __future__ import annotations

import base64
import logging
from typing import Any

from poster_studio.config import settings
from poster_studio.dataurl import parse_data_url, to_data_url
from poster_studio.errors import ProviderError
from poster_studio.providers.base import GeneratedImage

logger = logging.getLogger(__name__)

# Mask convention sent to the model: white = editable, transparent/black = keep.
MASKED_EDIT_INSTRUCTIONS = (
    "You are given an image and a mask. The second image is the mask: white areas mark "
    "the region to change, everything else must stay exactly as it is.\n"
    "Only modify the masked region. Keep lighting, perspective and style consistent.\n"
    "Return the full edited image at the same size and aspect ratio.\n"
)


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str) -> None:
        # Imported lazily so the app can start without the dependency installed.
        from google import genai  # type: ignore

        self._genai = genai
        self.client = genai.Client(api_key=api_key)

    async def generate(
        self,
        images: list[str],
        prompt: str,
        aspect_ratio: str,
        n: int,
    ) -> list[GeneratedImage]:
        """
        Generate up to `n` posters from reference images and a prompt.

        Image-preview models return one image per call, so loop until we hit n
        (or the model returns nothing).
        """
        from google.genai import types  # type: ignore

        model = settings.gemini_image_model
        enriched = f"{prompt.strip()}\nThe output image's aspect ratio MUST be exactly {aspect_ratio}."
        parts = [_inline_part(types, url) for url in images]

        out: list[GeneratedImage] = []
        for _ in range(max(1, n)):
            logger.info("gemini generate: model=%s refs=%d aspect=%s", model, len(parts), aspect_ratio)
            resp = await self.client.aio.models.generate_content(
                model=model,
                contents=[*parts, enriched],
                config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
            )
            extracted = _extract_images_from_generate_content(resp)
            for data_url, meta in extracted:
                out.append(
                    GeneratedImage(
                        data_url=data_url,
                        prompt_used=enriched,
                        provider=self.name,
                        model=model,
                        raw_metadata=meta | {"aspect_ratio": aspect_ratio},
                    )
                )
                if len(out) >= n:
                    return out
            if not extracted:
                break
        return out

    async def edit(self, image: str, mask: str, prompt: str) -> GeneratedImage:
        from google.genai import types  # type: ignore

        model = settings.gemini_image_model
        enriched = f"{MASKED_EDIT_INSTRUCTIONS}\nRequested change: {prompt.strip()}"
        logger.info("gemini masked edit: model=%s", model)
        resp = await self.client.aio.models.generate_content(
            model=model,
            contents=[_inline_part(types, image), _inline_part(types, mask), enriched],
            config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
        )
        extracted = _extract_images_from_generate_content(resp)
        if not extracted:
            raise ProviderError("Model failed to return an edited image.")
        data_url, meta = extracted[0]
        return GeneratedImage(
            data_url=data_url,
            prompt_used=enriched,
            provider=self.name,
            model=model,
            raw_metadata=meta,
        )


def _inline_part(types: Any, data_url: str) -> Any:
    mime, content = parse_data_url(data_url)
    return types.Part.from_bytes(data=content, mime_type=mime)


def _extract_images_from_generate_content(resp: Any) -> list[tuple[str, dict[str, Any]]]:
    out: list[tuple[str, dict[str, Any]]] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or ""
            data = getattr(inline, "data", None)
            if not data:
                continue
            if mime and not mime.startswith("image/"):
                continue
            if isinstance(data, str):
                # Some transports hand back the payload still base64-encoded.
                data = base64.b64decode(data)
            out.append((to_data_url(data, mime or "image/png"), {"mime_type": mime}))
    return out
