from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidSettingsError
from ..http import BackendConfig

# Fields that control the adapter itself rather than the txt2img payload.
ADAPTER_FIELDS = frozenset({"check_model_exists"})


class Automatic1111ImageSettings(BaseModel):
    """txt2img options forwarded to ``/sdapi/v1/txt2img/``.

    Names match the sdapi payload so they can be sent as-is. Options left as
    ``None`` are omitted and the server's own defaults apply.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    negative_prompt: Optional[str] = None
    styles: Optional[list[str]] = None
    steps: Optional[int] = Field(default=None, ge=1)
    cfg_scale: Optional[float] = Field(default=None, gt=0)
    sampler_name: Optional[str] = None
    scheduler: Optional[str] = None
    denoising_strength: Optional[float] = Field(default=None, ge=0, le=1)
    batch_size: Optional[int] = Field(default=None, ge=1)
    subseed: Optional[int] = None
    subseed_strength: Optional[float] = Field(default=None, ge=0, le=1)
    restore_faces: Optional[bool] = None
    tiling: Optional[bool] = None
    eta: Optional[float] = None
    enable_hr: Optional[bool] = None
    hr_scale: Optional[float] = Field(default=None, gt=0)
    hr_upscaler: Optional[str] = None
    hr_second_pass_steps: Optional[int] = Field(default=None, ge=0)
    refiner_checkpoint: Optional[str] = None
    refiner_switch_at: Optional[float] = Field(default=None, ge=0, le=1)
    check_model_exists: bool = False

    def merged(self, overrides: "Automatic1111ImageSettings") -> "Automatic1111ImageSettings":
        return self.model_copy(update=overrides.model_dump(exclude_unset=True))

    def payload_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude=set(ADAPTER_FIELDS))


def parse_settings(data: Optional[Mapping[str, Any]]) -> Automatic1111ImageSettings:
    if isinstance(data, Automatic1111ImageSettings):
        return data
    try:
        return Automatic1111ImageSettings.model_validate(dict(data or {}))
    except ValidationError as e:
        raise InvalidSettingsError("automatic1111", str(e)) from e


class Automatic1111ProviderConfig(BackendConfig):
    base_url: str = "http://127.0.0.1:7860"
    defaults: Automatic1111ImageSettings = Automatic1111ImageSettings()
