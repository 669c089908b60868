from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from _fakes import FakeComfyUI
from sd_providers import cli
from sd_providers.config import SDPConfig
from sd_providers.registry import ProviderRegistry

runner = CliRunner()


@pytest.fixture
def fake_comfy(monkeypatch: pytest.MonkeyPatch) -> FakeComfyUI:
    fake = FakeComfyUI(filenames=("a.png", "b.png"))
    config = SDPConfig.model_validate({"providers": {"comfyui": {"poll_interval": 0}}})
    monkeypatch.setattr(cli, "_load_registry", lambda path: ProviderRegistry(config, transport=fake.transport))
    return fake


def test_generate_writes_images(fake_comfy: FakeComfyUI, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    result = runner.invoke(
        cli.app,
        ["generate", "a lighthouse", "--model", "sd15", "-n", "2", "--steps", "12", "--out-dir", str(out_dir)],
    )

    assert result.exit_code == 0, result.output
    assert (out_dir / "image_1.png").read_bytes() == fake_comfy.images["a.png"]
    assert (out_dir / "image_2.png").read_bytes() == fake_comfy.images["b.png"]
    assert fake_comfy.submitted[0]["prompt"]["4"]["inputs"]["steps"] == 12


def test_generate_reports_backend_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    fake = FakeComfyUI(submit_status=500)
    monkeypatch.setattr(cli, "_load_registry", lambda path: ProviderRegistry(SDPConfig(), transport=fake.transport))

    result = runner.invoke(cli.app, ["generate", "x", "--model", "sd15", "--out-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Generation failed" in result.output


def test_models_lists_checkpoints(fake_comfy: FakeComfyUI) -> None:
    result = runner.invoke(cli.app, ["models"])

    assert result.exit_code == 0, result.output
    assert "sdxl_base.safetensors" in result.output


def test_bad_config_exits_with_code_2(tmp_path: Path) -> None:
    config_file = tmp_path / "sdp.toml"
    config_file.write_text('default_provider = "nonexistent"\n')

    result = runner.invoke(cli.app, ["models", "--config", str(config_file)])

    assert result.exit_code == 2
    assert "Config error" in result.output


def test_config_schema_is_json() -> None:
    result = runner.invoke(cli.app, ["config-schema"])

    assert result.exit_code == 0
    assert '"default_provider"' in result.output
    assert '"max_poll_attempts"' in result.output
