from __future__ import annotations

from .checkpoints import ModelSchema, create_model_schema, resolve_model_checkpoint
from .client import ArtifactDescriptor, ComfyUIClient
from .job import JobRun, JobRunner, JobState
from .model import ComfyUIImageModel
from .provider import ComfyUIProvider, create_comfyui_provider
from .settings import ComfyUIImageSettings, ComfyUIProviderConfig
from .workflow import GenerationRequest, NodeKind, NodeRef, Workflow, build_workflow

__all__ = [
    "ArtifactDescriptor",
    "ComfyUIClient",
    "ComfyUIImageModel",
    "ComfyUIImageSettings",
    "ComfyUIProvider",
    "ComfyUIProviderConfig",
    "GenerationRequest",
    "JobRun",
    "JobRunner",
    "JobState",
    "ModelSchema",
    "NodeKind",
    "NodeRef",
    "Workflow",
    "build_workflow",
    "create_comfyui_provider",
    "create_model_schema",
    "resolve_model_checkpoint",
]
