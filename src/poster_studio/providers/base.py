from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class GeneratedImage:
    # data:<mime>;base64,<payload>
    data_url: str
    prompt_used: str
    provider: str
    model: str
    raw_metadata: dict[str, Any]


class ImageProvider(Protocol):
    name: str

    async def generate(
        self,
        images: list[str],
        prompt: str,
        aspect_ratio: str,
        n: int,
    ) -> list[GeneratedImage]: ...

    async def edit(
        self,
        image: str,
        mask: str,
        prompt: str,
    ) -> GeneratedImage: ...
