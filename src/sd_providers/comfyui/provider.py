from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx

from ..cancel import CancellationToken
from ..http import combine_headers, open_client
from ..model import ImageProvider
from .client import ComfyUIClient
from .model import PROVIDER_ID, ComfyUIImageModel
from .settings import ComfyUIProviderConfig, parse_settings


class ComfyUIProvider(ImageProvider):
    def __init__(
        self,
        config: Optional[ComfyUIProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or ComfyUIProviderConfig()
        self._transport = transport

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def config(self) -> ComfyUIProviderConfig:
        return self._config

    def image(self, model_id: str, settings: Optional[Mapping[str, Any]] = None) -> ComfyUIImageModel:
        merged = self._config.defaults.merged(parse_settings(settings))
        return ComfyUIImageModel(model_id, self._config, settings=merged, transport=self._transport)

    async def list_models(self, cancel: Optional[CancellationToken] = None) -> list[str]:
        cancel = cancel or CancellationToken()
        async with open_client(self._config.timeout, self._transport) as http:
            client = self._client(http)
            return await cancel.race(client.list_checkpoints(), "while listing checkpoints")

    async def checkpoint_exists(self, checkpoint: str) -> bool:
        async with open_client(self._config.timeout, self._transport) as http:
            return await self._client(http).checkpoint_exists(checkpoint)

    def _client(self, http: httpx.AsyncClient) -> ComfyUIClient:
        headers = combine_headers(self._config.auth_headers(), self._config.headers)
        return ComfyUIClient(http, self._config.base_url, headers=headers, client_id=self._config.client_id)


def create_comfyui_provider(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    client_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options: Any,
) -> ComfyUIProvider:
    values: dict[str, Any] = dict(options)
    if base_url is not None:
        values["base_url"] = base_url
    if api_key is not None:
        values["api_key"] = api_key
    if headers is not None:
        values["headers"] = dict(headers)
    if client_id is not None:
        values["client_id"] = client_id
    return ComfyUIProvider(ComfyUIProviderConfig.model_validate(values), transport=transport)
