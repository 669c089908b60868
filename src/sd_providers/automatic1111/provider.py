from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx

from ..cancel import CancellationToken
from ..http import combine_headers, open_client
from ..model import ImageProvider
from .client import Automatic1111Client
from .model import PROVIDER_ID, Automatic1111ImageModel
from .settings import Automatic1111ProviderConfig, parse_settings


class Automatic1111Provider(ImageProvider):
    def __init__(
        self,
        config: Optional[Automatic1111ProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or Automatic1111ProviderConfig()
        self._transport = transport

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def config(self) -> Automatic1111ProviderConfig:
        return self._config

    def image(self, model_id: str, settings: Optional[Mapping[str, Any]] = None) -> Automatic1111ImageModel:
        merged = self._config.defaults.merged(parse_settings(settings))
        return Automatic1111ImageModel(model_id, self._config, settings=merged, transport=self._transport)

    async def list_models(self, cancel: Optional[CancellationToken] = None) -> list[str]:
        cancel = cancel or CancellationToken()
        headers = combine_headers(self._config.auth_headers(), self._config.headers)
        async with open_client(self._config.timeout, self._transport) as http:
            client = Automatic1111Client(http, self._config.base_url, headers=headers)
            return [m.model_name for m in await client.list_models(cancel)]


def create_automatic1111_provider(
    base_url: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options: Any,
) -> Automatic1111Provider:
    values: dict[str, Any] = dict(options)
    if base_url is not None:
        values["base_url"] = base_url
    if headers is not None:
        values["headers"] = dict(headers)
    return Automatic1111Provider(Automatic1111ProviderConfig.model_validate(values), transport=transport)
