from __future__ import annotations

from .client import Automatic1111Client, decode_image
from .model import Automatic1111ImageModel
from .provider import Automatic1111Provider, create_automatic1111_provider
from .settings import Automatic1111ImageSettings, Automatic1111ProviderConfig

__all__ = [
    "Automatic1111Client",
    "Automatic1111ImageModel",
    "Automatic1111ImageSettings",
    "Automatic1111Provider",
    "Automatic1111ProviderConfig",
    "create_automatic1111_provider",
    "decode_image",
]
