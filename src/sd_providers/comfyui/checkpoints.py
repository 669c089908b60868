from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

CHECKPOINT_EXTENSIONS = (".safetensors", ".ckpt")
DEFAULT_CHECKPOINT_EXTENSION = ".safetensors"


@dataclass(frozen=True)
class ModelSchema:
    id: str
    name: str
    checkpoint: str
    description: Optional[str] = None


def resolve_model_checkpoint(model_id: str) -> str:
    """Map a model id such as ``sdxl-base`` to a checkpoint filename.

    Ids that already carry a checkpoint extension are returned unchanged;
    otherwise dashes become underscores and ``.safetensors`` is appended.
    """
    if model_id.endswith(CHECKPOINT_EXTENSIONS):
        return model_id
    return model_id.replace("-", "_") + DEFAULT_CHECKPOINT_EXTENSION


def strip_checkpoint_extension(checkpoint: str) -> str:
    for ext in CHECKPOINT_EXTENSIONS:
        if checkpoint.endswith(ext):
            return checkpoint[: -len(ext)]
    return checkpoint


def create_model_schema(checkpoint: str) -> ModelSchema:
    return ModelSchema(
        id=checkpoint,
        name=strip_checkpoint_extension(checkpoint),
        checkpoint=checkpoint,
        description=f"Model: {checkpoint}",
    )


def is_xl_checkpoint(checkpoint: str) -> bool:
    return "xl" in checkpoint.lower()
