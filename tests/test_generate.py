from __future__ import annotations

import asyncio

import pytest

from _fakes import FakeAutomatic1111, FakeComfyUI, png_bytes
from sd_providers import generate_images
from sd_providers.automatic1111 import create_automatic1111_provider
from sd_providers.comfyui import create_comfyui_provider
from sd_providers.errors import BackendAPIError
from sd_providers.generate import batch_sizes
from sd_providers.model import ImageModel
from sd_providers.types import ImageCallOptions, ImageGenerationResult, ResponseMetadata, now_utc


class CountingModel(ImageModel):
    """Returns one tagged image per requested slot, optionally failing a call."""

    max_images_per_call = 2

    def __init__(self, fail_on_call: int | None = None):
        self.calls: list[ImageCallOptions] = []
        self.fail_on_call = fail_on_call

    @property
    def model_id(self) -> str:
        return "counting"

    @property
    def provider(self) -> str:
        return "test"

    async def generate(self, options: ImageCallOptions) -> ImageGenerationResult:
        index = len(self.calls)
        self.calls.append(options)
        # Later calls finish first so ordering has to come from the call index.
        await asyncio.sleep(0.01 * (5 - index))
        if index == self.fail_on_call:
            raise BackendAPIError(500, "Internal Server Error")
        return ImageGenerationResult(
            images=[f"{index}-{i}".encode() for i in range(options.n)],
            warnings=[],
            response=ResponseMetadata(model_id=self.model_id, timestamp=now_utc()),
        )


class TestBatchSizes:
    @pytest.mark.parametrize(
        "n,max_per_call,expected",
        [
            (1, 4, [1]),
            (4, 4, [4]),
            (5, 4, [4, 1]),
            (9, 4, [4, 4, 1]),
            (3, 1, [1, 1, 1]),
        ],
    )
    def test_splits(self, n: int, max_per_call: int, expected: list[int]) -> None:
        assert batch_sizes(n, max_per_call) == expected

    def test_rejects_zero(self) -> None:
        with pytest.raises(ValueError):
            batch_sizes(0, 4)


class TestGenerateImages:
    @pytest.mark.asyncio
    async def test_results_concatenated_in_call_order(self) -> None:
        model = CountingModel()
        result = await generate_images(model, "x", n=5)

        assert [c.n for c in model.calls] == [2, 2, 1]
        assert result.images == [b"0-0", b"0-1", b"1-0", b"1-1", b"2-0"]
        assert len(result.responses) == 3
        assert result.image == b"0-0"

    @pytest.mark.asyncio
    async def test_max_images_override(self) -> None:
        model = CountingModel()
        result = await generate_images(model, "x", n=3, max_images_per_call=1)
        assert [c.n for c in model.calls] == [1, 1, 1]
        assert len(result.images) == 3

    @pytest.mark.asyncio
    async def test_failure_propagates(self) -> None:
        model = CountingModel(fail_on_call=1)
        with pytest.raises(BackendAPIError):
            await generate_images(model, "x", n=6)

    @pytest.mark.asyncio
    async def test_shared_cancel_token(self) -> None:
        model = CountingModel()
        await generate_images(model, "x", n=4)
        assert model.calls[0].cancel is model.calls[1].cancel

    @pytest.mark.asyncio
    async def test_comfyui_batches_of_four(self) -> None:
        fake = FakeComfyUI(filenames=("a.png", "b.png", "c.png", "d.png"))
        provider = create_comfyui_provider(base_url="http://comfy.test", transport=fake.transport, poll_interval=0)

        result = await generate_images(provider.image("sd15"), "x", n=4, seed=3)

        assert fake.count("/prompt") == 1
        assert fake.submitted[0]["prompt"]["5"]["inputs"]["batch_size"] == 4
        assert len(result.images) == 4

    @pytest.mark.asyncio
    async def test_automatic1111_one_call_per_image(self) -> None:
        fake = FakeAutomatic1111(images=(png_bytes("one"),))
        provider = create_automatic1111_provider(base_url="http://a1111.test", transport=fake.transport)

        result = await generate_images(provider.image("m"), "x", n=3, aspect_ratio="4:3")

        assert len(fake.payloads) == 3
        assert all(p["n_iter"] == 1 for p in fake.payloads)
        assert len(result.images) == 3
        assert len(result.warnings) == 3
