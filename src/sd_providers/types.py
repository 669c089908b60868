from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional

from .cancel import CancellationToken

WarningType = Literal["unsupported-setting", "other"]


@dataclass(frozen=True)
class ImageCallOptions:
    prompt: str
    n: int = 1
    size: Optional[str] = None
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    provider_options: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    headers: Mapping[str, Optional[str]] = field(default_factory=dict)
    cancel: Optional[CancellationToken] = None


@dataclass(frozen=True)
class CallWarning:
    type: WarningType
    setting: Optional[str] = None
    details: Optional[str] = None


@dataclass(frozen=True)
class ResponseMetadata:
    model_id: str
    timestamp: _dt.datetime
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageGenerationResult:
    images: list[bytes]
    warnings: list[CallWarning]
    response: ResponseMetadata


def aspect_ratio_warning() -> CallWarning:
    return CallWarning(
        type="unsupported-setting",
        setting="aspect_ratio",
        details="This model does not support the `aspect_ratio` option. Use `size` instead.",
    )


def parse_size(size: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse a ``"WIDTHxHEIGHT"`` string; return None when absent or malformed."""
    if not size:
        return None
    parts = size.lower().split("x")
    if len(parts) != 2:
        return None
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def now_utc() -> _dt.datetime:
    return _dt.datetime.now(tz=_dt.timezone.utc)
