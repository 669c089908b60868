from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, Optional

import httpx

from ..cancel import CancellationToken
from ..errors import ModelNotFoundError
from ..http import combine_headers, open_client
from ..model import ImageModel
from ..types import (
    CallWarning,
    ImageCallOptions,
    ImageGenerationResult,
    ResponseMetadata,
    aspect_ratio_warning,
    now_utc,
    parse_size,
)
from .client import Automatic1111Client, decode_image
from .settings import Automatic1111ImageSettings, Automatic1111ProviderConfig, parse_settings

logger = logging.getLogger(__name__)

PROVIDER_ID = "automatic1111"
DEFAULT_SIZE = 512


class Automatic1111ImageModel(ImageModel):
    max_images_per_call = 1

    def __init__(
        self,
        model_id: str,
        config: Automatic1111ProviderConfig,
        settings: Optional[Automatic1111ImageSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        current_date: Optional[Callable[[], _dt.datetime]] = None,
    ):
        self._model_id = model_id
        self._config = config
        self._settings = settings or config.defaults
        self._transport = transport
        self._current_date = current_date or now_utc

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def provider(self) -> str:
        return PROVIDER_ID

    def build_payload(self, options: ImageCallOptions, settings: Automatic1111ImageSettings) -> dict[str, Any]:
        width, height = parse_size(options.size) or (DEFAULT_SIZE, DEFAULT_SIZE)
        payload: dict[str, Any] = {
            "prompt": options.prompt,
            "n_iter": options.n,
            "width": width,
            "height": height,
            "override_settings": {"sd_model_checkpoint": self._model_id},
        }
        if options.seed is not None:
            payload["seed"] = options.seed
        payload.update(settings.payload_fields())
        return payload

    async def generate(self, options: ImageCallOptions) -> ImageGenerationResult:
        warnings: list[CallWarning] = []
        if options.aspect_ratio is not None:
            logger.warning(f"{self._model_id}: aspect_ratio {options.aspect_ratio!r} is not supported, use size")
            warnings.append(aspect_ratio_warning())

        settings = self._settings.merged(parse_settings(options.provider_options.get(PROVIDER_ID)))
        cancel = options.cancel or CancellationToken()
        headers = combine_headers(self._config.auth_headers(), self._config.headers, options.headers)
        timestamp = self._current_date()

        async with open_client(self._config.timeout, self._transport) as http:
            client = Automatic1111Client(http, self._config.base_url, headers=headers)

            if settings.check_model_exists:
                models = await client.list_models(cancel)
                if not any(m.model_name == self._model_id for m in models):
                    raise ModelNotFoundError(self._model_id)

            cancel.raise_if_cancelled("before image generation")
            response, response_headers = await client.txt2img(self.build_payload(options, settings), cancel)

        images = [decode_image(image) for image in response.images]
        logger.info(f"Received {len(images)} image(s) for model {self._model_id}")
        return ImageGenerationResult(
            images=images,
            warnings=warnings,
            response=ResponseMetadata(
                model_id=self._model_id,
                timestamp=timestamp,
                headers=response_headers,
            ),
        )
