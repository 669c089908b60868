from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .cancel import CancellationToken
from .model import ImageModel
from .types import CallWarning, ImageCallOptions, ResponseMetadata

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    images: list[bytes] = field(default_factory=list)
    warnings: list[CallWarning] = field(default_factory=list)
    responses: list[ResponseMetadata] = field(default_factory=list)

    @property
    def image(self) -> Optional[bytes]:
        return self.images[0] if self.images else None


def batch_sizes(n: int, max_per_call: int) -> list[int]:
    if n < 1:
        raise ValueError(f"n must be at least 1, got {n}")
    per_call = max(1, max_per_call)
    full, rest = divmod(n, per_call)
    return [per_call] * full + ([rest] if rest else [])


async def generate_images(
    model: ImageModel,
    prompt: str,
    n: int = 1,
    size: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    seed: Optional[int] = None,
    provider_options: Optional[Mapping[str, Mapping[str, Any]]] = None,
    headers: Optional[Mapping[str, Optional[str]]] = None,
    cancel: Optional[CancellationToken] = None,
    max_images_per_call: Optional[int] = None,
) -> GenerationResult:
    """Generate ``n`` images, splitting the work into calls the model accepts.

    Calls run concurrently and their images are returned in call order.
    """
    cancel = cancel or CancellationToken()
    sizes = batch_sizes(n, max_images_per_call or model.max_images_per_call)
    if len(sizes) > 1:
        logger.info(f"Splitting {n} images for {model.model_id} into {len(sizes)} calls")

    tasks = [
        asyncio.ensure_future(
            model.generate(
                ImageCallOptions(
                    prompt=prompt,
                    n=count,
                    size=size,
                    aspect_ratio=aspect_ratio,
                    seed=seed,
                    provider_options=provider_options or {},
                    headers=headers or {},
                    cancel=cancel,
                )
            )
        )
        for count in sizes
    ]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    combined = GenerationResult()
    for r in results:
        combined.images.extend(r.images)
        combined.warnings.extend(r.warnings)
        combined.responses.append(r.response)
    return combined
