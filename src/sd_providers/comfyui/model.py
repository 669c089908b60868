from __future__ import annotations

import datetime as _dt
import logging
import random
from typing import Callable, Optional

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
from .checkpoints import resolve_model_checkpoint
from .client import ComfyUIClient
from .job import JobRun, JobRunner
from .settings import ComfyUIImageSettings, ComfyUIProviderConfig, parse_settings
from .workflow import GenerationRequest, build_workflow

logger = logging.getLogger(__name__)

PROVIDER_ID = "comfyui"


class ComfyUIImageModel(ImageModel):
    max_images_per_call = 4

    def __init__(
        self,
        model_id: str,
        config: ComfyUIProviderConfig,
        settings: Optional[ComfyUIImageSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        current_date: Optional[Callable[[], _dt.datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._model_id = model_id
        self._config = config
        self._settings = settings or config.defaults
        self._transport = transport
        self._current_date = current_date or now_utc
        self._rng = rng

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def provider(self) -> str:
        return PROVIDER_ID

    @property
    def settings(self) -> ComfyUIImageSettings:
        return self._settings

    def build_request(self, options: ImageCallOptions) -> tuple[GenerationRequest, ComfyUIImageSettings]:
        call_settings = parse_settings(options.provider_options.get(PROVIDER_ID))
        settings = self._settings.merged(call_settings)

        width, height = settings.width, settings.height
        size = parse_size(options.size)
        if size is not None:
            width, height = size
        elif options.size:
            logger.warning(f"Ignoring malformed size {options.size!r}, expected WIDTHxHEIGHT")

        request = GenerationRequest(
            prompt=options.prompt,
            checkpoint=resolve_model_checkpoint(self._model_id),
            count=options.n,
            negative_prompt=settings.negative_prompt,
            width=width,
            height=height,
            seed=options.seed,
            settings_seed=settings.seed,
            sampler=settings.sampler,
            scheduler=settings.scheduler,
            cfg_scale=settings.cfg_scale,
            steps=settings.steps,
            denoising_strength=settings.denoising_strength,
        )
        return request, settings

    async def generate(self, options: ImageCallOptions) -> ImageGenerationResult:
        warnings: list[CallWarning] = []
        if options.aspect_ratio is not None:
            logger.warning(f"{self._model_id}: aspect_ratio {options.aspect_ratio!r} is not supported, use size")
            warnings.append(aspect_ratio_warning())

        request, settings = self.build_request(options)
        cancel = options.cancel or CancellationToken()
        headers = combine_headers(self._config.auth_headers(), self._config.headers, options.headers)

        async with open_client(self._config.timeout, self._transport) as http:
            client = ComfyUIClient(
                http, self._config.base_url, headers=headers, client_id=self._config.client_id
            )

            if settings.check_model_exists and not await client.checkpoint_exists(request.checkpoint):
                raise ModelNotFoundError(self._model_id)

            job = JobRun(workflow=build_workflow(request, self._rng))
            runner = JobRunner(
                client,
                poll_interval=self._config.poll_interval,
                max_attempts=self._config.max_poll_attempts,
            )
            images = await runner.run(job, cancel)

        return ImageGenerationResult(
            images=images,
            warnings=warnings,
            response=ResponseMetadata(
                model_id=self._model_id,
                timestamp=self._current_date(),
                headers=job.response_headers,
            ),
        )
