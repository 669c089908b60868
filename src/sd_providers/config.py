from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .automatic1111.settings import Automatic1111ProviderConfig
from .comfyui.settings import ComfyUIProviderConfig

CONFIG_FILENAME = "sdp.toml"
PROVIDER_NAMES = ("comfyui", "automatic1111")


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    comfyui: Optional[ComfyUIProviderConfig] = None
    automatic1111: Optional[Automatic1111ProviderConfig] = None


class SDPConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    default_provider: str = "comfyui"
    providers: ProvidersConfig = ProvidersConfig()

    @field_validator("default_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        if not v:
            raise ValueError("default_provider cannot be empty")
        if v not in PROVIDER_NAMES:
            raise ValueError(
                f"Unknown default_provider '{v}'. Available providers: {sorted(PROVIDER_NAMES)}"
            )
        return v

    @model_validator(mode="after")
    def check_default_provider_configured(self) -> "SDPConfig":
        configured = self.configured_providers()
        if configured and self.default_provider not in configured:
            raise ValueError(
                f"default_provider '{self.default_provider}' is not configured. "
                f"Configured providers: {sorted(configured)}"
            )
        return self

    def configured_providers(self) -> set[str]:
        names = set()
        if self.providers.comfyui is not None:
            names.add("comfyui")
        if self.providers.automatic1111 is not None:
            names.add("automatic1111")
        return names

    def comfyui(self) -> ComfyUIProviderConfig:
        return self.providers.comfyui or ComfyUIProviderConfig()

    def automatic1111(self) -> Automatic1111ProviderConfig:
        return self.providers.automatic1111 or Automatic1111ProviderConfig()


class ConfigError(Exception):
    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


def load_config(config_path: Path) -> SDPConfig:
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} or run 'sdp config-schema' to see the available options",
            path=config_path,
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore

    try:
        text = config_path.read_text(encoding="utf-8")
        data = tomllib.loads(text)
    except Exception as e:
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path) from e

    try:
        return SDPConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}", path=config_path) from e


def find_config(start_dir: Optional[Path] = None) -> Path:
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()
    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        current = current.parent

    return start_dir / CONFIG_FILENAME
