from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from .cancel import CancellationToken
from .errors import NoSuchModelError
from .types import ImageCallOptions, ImageGenerationResult


class ImageModel(ABC):
    max_images_per_call: int = 1

    @property
    @abstractmethod
    def model_id(self) -> str: ...

    @property
    @abstractmethod
    def provider(self) -> str: ...

    @abstractmethod
    async def generate(self, options: ImageCallOptions) -> ImageGenerationResult:
        """Generate ``options.n`` images for ``options.prompt``."""
        raise NotImplementedError


class ImageProvider(ABC):
    @property
    @abstractmethod
    def provider_id(self) -> str: ...

    @abstractmethod
    def image(self, model_id: str, settings: Optional[Mapping[str, Any]] = None) -> ImageModel: ...

    def image_model(self, model_id: str, settings: Optional[Mapping[str, Any]] = None) -> ImageModel:
        return self.image(model_id, settings)

    @abstractmethod
    async def list_models(self, cancel: Optional[CancellationToken] = None) -> list[str]:
        """Return the model names the backend currently serves."""
        raise NotImplementedError

    def language_model(self, model_id: str) -> Any:
        raise NoSuchModelError(model_id, "languageModel")

    def text_embedding_model(self, model_id: str) -> Any:
        raise NoSuchModelError(model_id, "textEmbeddingModel")
