from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidSettingsError
from ..http import BackendConfig


class ComfyUIImageSettings(BaseModel):
    """Per-model generation settings understood by the ComfyUI workflow.

    Unset fields fall back to the workflow defaults: 20 steps, cfg 7, the
    ``euler`` sampler with the ``normal`` scheduler, denoise 1, and a
    512x512 (or 1024x1024 for XL checkpoints) canvas.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    negative_prompt: Optional[str] = None
    seed: Optional[int] = Field(default=None, ge=0)
    steps: Optional[int] = Field(default=None, ge=1)
    cfg_scale: Optional[float] = Field(default=None, gt=0)
    sampler: Optional[str] = None
    scheduler: Optional[str] = None
    width: Optional[int] = Field(default=None, ge=8)
    height: Optional[int] = Field(default=None, ge=8)
    denoising_strength: Optional[float] = Field(default=None, ge=0, le=1)
    check_model_exists: bool = False

    def merged(self, overrides: "ComfyUIImageSettings") -> "ComfyUIImageSettings":
        """Return a copy with every field explicitly set on ``overrides`` applied."""
        return self.model_copy(update=overrides.model_dump(exclude_unset=True))


def parse_settings(data: Optional[Mapping[str, Any]]) -> ComfyUIImageSettings:
    if isinstance(data, ComfyUIImageSettings):
        return data
    try:
        return ComfyUIImageSettings.model_validate(dict(data or {}))
    except ValidationError as e:
        raise InvalidSettingsError("comfyui", str(e)) from e


class ComfyUIProviderConfig(BackendConfig):
    base_url: str = "http://127.0.0.1:8188"
    client_id: str = "comfyui"
    poll_interval: float = Field(default=0.5, ge=0)
    max_poll_attempts: int = Field(default=60, ge=1)
    defaults: ComfyUIImageSettings = ComfyUIImageSettings()
