from __future__ import annotations

from .automatic1111 import Automatic1111Provider, create_automatic1111_provider
from .cancel import CancellationToken
from .comfyui import ComfyUIProvider, create_comfyui_provider, resolve_model_checkpoint
from .config import ConfigError, SDPConfig, load_config
from .errors import (
    BackendAPIError,
    GenerationAbortedError,
    GenerationTimeoutError,
    InvalidResponseDataError,
    InvalidSettingsError,
    JobFailedError,
    ModelNotFoundError,
    NetworkError,
    NoSuchModelError,
    ProviderError,
)
from .generate import GenerationResult, generate_images
from .model import ImageModel, ImageProvider
from .registry import ProviderRegistry
from .types import CallWarning, ImageCallOptions, ImageGenerationResult, ResponseMetadata

__all__ = [
    "Automatic1111Provider",
    "BackendAPIError",
    "CallWarning",
    "CancellationToken",
    "ComfyUIProvider",
    "ConfigError",
    "GenerationAbortedError",
    "GenerationResult",
    "GenerationTimeoutError",
    "ImageCallOptions",
    "ImageGenerationResult",
    "ImageModel",
    "ImageProvider",
    "InvalidResponseDataError",
    "InvalidSettingsError",
    "JobFailedError",
    "ModelNotFoundError",
    "NetworkError",
    "NoSuchModelError",
    "ProviderError",
    "ProviderRegistry",
    "ResponseMetadata",
    "SDPConfig",
    "create_automatic1111_provider",
    "create_comfyui_provider",
    "generate_images",
    "load_config",
    "resolve_model_checkpoint",
]
