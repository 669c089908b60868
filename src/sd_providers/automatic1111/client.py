from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from ..cancel import CancellationToken
from ..errors import BackendAPIError, InvalidResponseDataError, NetworkError
from ..http import body_excerpt, without_trailing_slash
from .schemas import ErrorResponse, SDModel, SDModelList, TextToImageResponse

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[a-z]+;base64,")


def decode_image(encoded: str) -> bytes:
    """Decode one base64 image, dropping any ``data:image/...;base64,`` prefix."""
    try:
        return base64.b64decode(DATA_URL_PREFIX.sub("", encoded, count=1), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidResponseDataError("Image is not valid base64", encoded[:64]) from e


def api_error(response: httpx.Response) -> BackendAPIError:
    details = body_excerpt(response)
    try:
        details = ErrorResponse.model_validate_json(response.content).message()
    except ValidationError:
        pass
    return BackendAPIError(response.status_code, response.reason_phrase, details)


class Automatic1111Client:
    """Async wrapper around the ``/sdapi/v1`` endpoints. The caller owns ``http``."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, headers: Optional[Mapping[str, str]] = None):
        self.http = http
        self.base_url = without_trailing_slash(base_url)
        self.headers = dict(headers or {})

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def list_models(self, cancel: CancellationToken) -> list[SDModel]:
        try:
            response = await cancel.race(
                self.http.get(self.url("/sdapi/v1/sd-models/"), headers=self.headers),
                "while listing models",
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to list models: {e}") from e
        if not response.is_success:
            raise api_error(response)
        try:
            return SDModelList.validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponseDataError(f"Invalid model list: {e}", body_excerpt(response)) from e

    async def txt2img(
        self, payload: Mapping[str, Any], cancel: CancellationToken
    ) -> tuple[TextToImageResponse, dict[str, str]]:
        url = self.url("/sdapi/v1/txt2img/")
        logger.info(f"Requesting {payload.get('n_iter', 1)} image(s) from {url}")
        try:
            response = await cancel.race(
                self.http.post(url, json=dict(payload), headers=self.headers),
                "during image generation",
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to call txt2img: {e}") from e
        if not response.is_success:
            raise api_error(response)
        try:
            parsed = TextToImageResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponseDataError("Invalid response data", body_excerpt(response)) from e
        return parsed, dict(response.headers)
