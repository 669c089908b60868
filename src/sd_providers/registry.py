from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from .automatic1111.provider import Automatic1111Provider
from .comfyui.provider import ComfyUIProvider
from .config import PROVIDER_NAMES, ConfigError, SDPConfig, find_config, load_config
from .model import ImageModel, ImageProvider


class ProviderRegistry:
    def __init__(self, config: SDPConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._transport = transport
        self._providers: dict[str, ImageProvider] = {}

    @classmethod
    def from_config_file(
        cls,
        config_path: Optional[Path] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProviderRegistry":
        """Load the registry from ``config_path``.

        Without an explicit path the nearest ``sdp.toml`` is used, falling back
        to built-in defaults when none exists.
        """
        if config_path is None:
            found = find_config()
            config = load_config(found) if found.exists() else SDPConfig()
        else:
            config = load_config(config_path)
        return cls(config, transport=transport)

    @property
    def config(self) -> SDPConfig:
        return self._config

    def get_provider(self, name: str) -> ImageProvider:
        if name in self._providers:
            return self._providers[name]

        provider = self._instantiate_provider(name)
        self._providers[name] = provider
        return provider

    def get_default_provider(self) -> ImageProvider:
        return self.get_provider(self._config.default_provider)

    def image_model(self, model_ref: str) -> ImageModel:
        """Resolve ``"provider:model"`` (or a bare model id for the default provider)."""
        provider_name, sep, model_id = model_ref.partition(":")
        if not sep:
            return self.get_default_provider().image(model_ref)
        if not model_id:
            raise ConfigError(f"Missing model id in '{model_ref}'. Use 'provider:model'.")
        return self.get_provider(provider_name).image(model_id)

    def _instantiate_provider(self, name: str) -> ImageProvider:
        if name == "comfyui":
            return ComfyUIProvider(self._config.comfyui(), transport=self._transport)

        if name == "automatic1111":
            return Automatic1111Provider(self._config.automatic1111(), transport=self._transport)

        raise ConfigError(
            f"Unknown provider: '{name}'. Available providers: {sorted(PROVIDER_NAMES)}"
        )
