from __future__ import annotations

import datetime as dt
import json
import random

import pytest

from _fakes import FakeComfyUI
from sd_providers.cancel import CancellationToken
from sd_providers.comfyui import ComfyUIProvider, ComfyUIProviderConfig, create_comfyui_provider
from sd_providers.errors import (
    GenerationAbortedError,
    InvalidSettingsError,
    ModelNotFoundError,
    NoSuchModelError,
)
from sd_providers.types import ImageCallOptions

BASE_URL = "http://comfy.test"
FIXED_DATE = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


def _provider(fake: FakeComfyUI, **options) -> ComfyUIProvider:
    return create_comfyui_provider(base_url=BASE_URL, transport=fake.transport, poll_interval=0, **options)


def _sent_prompt(fake: FakeComfyUI) -> dict:
    return fake.submitted[-1]["prompt"]


class TestComfyUIImageModel:
    def test_model_identity(self) -> None:
        model = _provider(FakeComfyUI()).image("sdxl-base")
        assert model.model_id == "sdxl-base"
        assert model.provider == "comfyui"
        assert model.max_images_per_call == 4

    @pytest.mark.asyncio
    async def test_generate_returns_images_and_metadata(self) -> None:
        fake = FakeComfyUI(filenames=("a.png", "b.png"))
        provider = _provider(fake)
        model = provider.image("sdxl-base")
        model._current_date = lambda: FIXED_DATE

        result = await model.generate(ImageCallOptions(prompt="a red fox", n=2, seed=5))

        assert result.images == [fake.images["a.png"], fake.images["b.png"]]
        assert result.warnings == []
        assert result.response.model_id == "sdxl-base"
        assert result.response.timestamp == FIXED_DATE
        assert result.response.headers["x-comfy"] == "1"

        prompt = _sent_prompt(fake)
        assert prompt["1"]["inputs"]["ckpt_name"] == "sdxl_base.safetensors"
        assert prompt["2"]["inputs"]["text"] == "a red fox"
        assert prompt["4"]["inputs"]["seed"] == 5
        assert prompt["5"]["inputs"]["batch_size"] == 2

    @pytest.mark.asyncio
    async def test_aspect_ratio_produces_single_warning(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sd15")

        result = await model.generate(ImageCallOptions(prompt="x", aspect_ratio="16:9"))

        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.type == "unsupported-setting"
        assert warning.setting == "aspect_ratio"
        assert "Use `size` instead" in (warning.details or "")
        assert len(result.images) == 1

    @pytest.mark.asyncio
    async def test_size_overrides_xl_default(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sdxl-base")

        await model.generate(ImageCallOptions(prompt="x", size="768x768"))

        latent = _sent_prompt(fake)["5"]["inputs"]
        assert (latent["width"], latent["height"]) == (768, 768)

    @pytest.mark.asyncio
    async def test_xl_default_size_without_size(self) -> None:
        fake = FakeComfyUI()
        await _provider(fake).image("sdxl-base").generate(ImageCallOptions(prompt="x"))

        latent = _sent_prompt(fake)["5"]["inputs"]
        assert (latent["width"], latent["height"]) == (1024, 1024)

    @pytest.mark.asyncio
    async def test_malformed_size_is_ignored(self) -> None:
        fake = FakeComfyUI()
        await _provider(fake).image("sd15").generate(ImageCallOptions(prompt="x", size="big"))

        latent = _sent_prompt(fake)["5"]["inputs"]
        assert (latent["width"], latent["height"]) == (512, 512)

    @pytest.mark.asyncio
    async def test_provider_options_override_model_settings(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sd15", {"steps": 10, "negative_prompt": "blurry"})

        await model.generate(
            ImageCallOptions(
                prompt="x",
                provider_options={"comfyui": {"steps": 35, "sampler": "dpmpp_2m", "seed": 9}},
            )
        )

        prompt = _sent_prompt(fake)
        sampler = prompt["4"]["inputs"]
        assert sampler["steps"] == 35
        assert sampler["sampler_name"] == "dpmpp_2m"
        assert sampler["seed"] == 9
        assert prompt["3"]["inputs"]["text"] == "blurry"

    @pytest.mark.asyncio
    async def test_other_providers_options_ignored(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sd15")

        await model.generate(
            ImageCallOptions(prompt="x", seed=1, provider_options={"automatic1111": {"tiling": True}})
        )
        assert fake.count("/prompt") == 1

    @pytest.mark.asyncio
    async def test_unknown_option_rejected(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sd15")

        with pytest.raises(InvalidSettingsError) as exc_info:
            await model.generate(ImageCallOptions(prompt="x", provider_options={"comfyui": {"stepz": 3}}))

        assert "stepz" in str(exc_info.value)
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_random_seed_when_unspecified(self) -> None:
        fake = FakeComfyUI()
        provider = _provider(fake)
        model = provider.image("sd15")
        model._rng = random.Random(7)

        await model.generate(ImageCallOptions(prompt="x"))

        seed = _sent_prompt(fake)["4"]["inputs"]["seed"]
        assert seed == random.Random(7).randint(0, 999_999)

    @pytest.mark.asyncio
    async def test_check_model_exists_missing_checkpoint(self) -> None:
        fake = FakeComfyUI(checkpoints=("other.safetensors",))
        model = _provider(fake).image("sdxl-base", {"check_model_exists": True})

        with pytest.raises(ModelNotFoundError) as exc_info:
            await model.generate(ImageCallOptions(prompt="x"))

        assert exc_info.value.model_id == "sdxl-base"
        assert fake.count("/models/checkpoints") == 1
        assert fake.count("/prompt") == 0

    @pytest.mark.asyncio
    async def test_check_model_exists_present_checkpoint(self) -> None:
        fake = FakeComfyUI()
        model = _provider(fake).image("sdxl-base", {"check_model_exists": True})

        result = await model.generate(ImageCallOptions(prompt="x"))

        assert fake.count("/models/checkpoints") == 1
        assert len(result.images) == 1

    @pytest.mark.asyncio
    async def test_headers_merged_with_auth(self) -> None:
        fake = FakeComfyUI()
        provider = _provider(fake, api_key="secret", headers={"X-Team": "art", "X-Drop": "1"})

        await provider.image("sd15").generate(
            ImageCallOptions(prompt="x", headers={"X-Call": "yes", "X-Drop": None})
        )

        sent = [r for r in fake.requests if r.url.path == "/prompt"][0].headers
        assert sent["authorization"] == "Bearer secret"
        assert sent["x-team"] == "art"
        assert sent["x-call"] == "yes"
        assert "x-drop" not in sent

    @pytest.mark.asyncio
    async def test_api_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMFY_TOKEN", "from-env")
        fake = FakeComfyUI()
        provider = _provider(fake, api_key_env="COMFY_TOKEN")

        await provider.image("sd15").generate(ImageCallOptions(prompt="x"))

        assert fake.requests[0].headers["authorization"] == "Bearer from-env"

    @pytest.mark.asyncio
    async def test_cancelled_call_makes_no_requests(self) -> None:
        fake = FakeComfyUI()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GenerationAbortedError):
            await _provider(fake).image("sd15").generate(ImageCallOptions(prompt="x", cancel=token))

        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_client_id_sent_with_prompt(self) -> None:
        fake = FakeComfyUI()
        await _provider(fake, client_id="studio").image("sd15").generate(ImageCallOptions(prompt="x"))
        body = json.loads([r for r in fake.requests if r.url.path == "/prompt"][0].content)
        assert body["client_id"] == "studio"


class TestComfyUIProvider:
    def test_defaults(self) -> None:
        provider = ComfyUIProvider()
        assert provider.provider_id == "comfyui"
        assert provider.config.base_url == "http://127.0.0.1:8188"
        assert provider.config.poll_interval == 0.5
        assert provider.config.max_poll_attempts == 60

    def test_trailing_slash_stripped(self) -> None:
        provider = create_comfyui_provider(base_url="http://comfy.test/")
        assert provider.config.base_url == "http://comfy.test"

    def test_image_model_alias(self) -> None:
        provider = ComfyUIProvider()
        assert provider.image_model("sd15").model_id == "sd15"

    def test_config_defaults_feed_models(self) -> None:
        config = ComfyUIProviderConfig(defaults={"steps": 12, "cfg_scale": 5.0})
        model = ComfyUIProvider(config).image("sd15", {"steps": 40})
        assert model.settings.steps == 40
        assert model.settings.cfg_scale == 5.0

    def test_invalid_model_settings(self) -> None:
        with pytest.raises(InvalidSettingsError):
            ComfyUIProvider().image("sd15", {"steps": 0})

    @pytest.mark.parametrize("method", ["language_model", "text_embedding_model"])
    def test_other_model_kinds_unsupported(self, method: str) -> None:
        with pytest.raises(NoSuchModelError) as exc_info:
            getattr(ComfyUIProvider(), method)("anything")
        assert exc_info.value.model_id == "anything"

    @pytest.mark.asyncio
    async def test_list_models(self) -> None:
        fake = FakeComfyUI()
        assert await _provider(fake).list_models() == ["sdxl_base.safetensors", "v1_5_pruned.safetensors"]

    @pytest.mark.asyncio
    async def test_list_models_with_cancelled_token(self) -> None:
        fake = FakeComfyUI()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GenerationAbortedError) as exc_info:
            await _provider(fake).list_models(token)

        assert exc_info.value.stage == "while listing checkpoints"
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_checkpoint_exists(self) -> None:
        fake = FakeComfyUI()
        provider = _provider(fake)
        assert await provider.checkpoint_exists("sdxl_base.safetensors")
        assert not await provider.checkpoint_exists("missing.safetensors")
