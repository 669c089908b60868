"""Typed ComfyUI job graphs.

A workflow is a mapping of node ids to typed node dataclasses. Links between
nodes are :class:`NodeRef` values naming the upstream node and its output slot;
they serialise to the ``[node_id, slot]`` pairs the ``/prompt`` endpoint expects.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Iterator, Mapping, Optional, Union

from ..errors import ProviderError
from .checkpoints import is_xl_checkpoint

DEFAULT_STEPS = 20
DEFAULT_CFG_SCALE = 7.0
DEFAULT_SAMPLER = "euler"
DEFAULT_SCHEDULER = "normal"
DEFAULT_DENOISE = 1.0
DEFAULT_SIZE = 512
DEFAULT_XL_SIZE = 1024
MAX_RANDOM_SEED = 999_999
FILENAME_PREFIX = "ComfyUI"

SAVE_NODE_ID = "7"

# CheckpointLoaderSimple output slots
MODEL_SLOT = 0
CLIP_SLOT = 1
VAE_SLOT = 2


class WorkflowError(ProviderError):
    pass


class NodeKind(str, Enum):
    CHECKPOINT_LOADER = "CheckpointLoaderSimple"
    TEXT_ENCODE = "CLIPTextEncode"
    SAMPLER = "KSampler"
    EMPTY_LATENT_IMAGE = "EmptyLatentImage"
    VAE_DECODE = "VAEDecode"
    SAVE_IMAGE = "SaveImage"


@dataclass(frozen=True)
class NodeRef:
    node_id: str
    slot: int = 0

    def to_json(self) -> list[Any]:
        return [self.node_id, self.slot]


@dataclass(frozen=True)
class CheckpointLoaderNode:
    kind: ClassVar[NodeKind] = NodeKind.CHECKPOINT_LOADER
    ckpt_name: str


@dataclass(frozen=True)
class TextEncodeNode:
    kind: ClassVar[NodeKind] = NodeKind.TEXT_ENCODE
    text: str
    clip: NodeRef


@dataclass(frozen=True)
class SamplerNode:
    kind: ClassVar[NodeKind] = NodeKind.SAMPLER
    seed: int
    steps: int
    cfg: float
    sampler_name: str
    scheduler: str
    denoise: float
    model: NodeRef
    positive: NodeRef
    negative: NodeRef
    latent_image: NodeRef


@dataclass(frozen=True)
class EmptyLatentImageNode:
    kind: ClassVar[NodeKind] = NodeKind.EMPTY_LATENT_IMAGE
    width: int
    height: int
    batch_size: int


@dataclass(frozen=True)
class VAEDecodeNode:
    kind: ClassVar[NodeKind] = NodeKind.VAE_DECODE
    samples: NodeRef
    vae: NodeRef


@dataclass(frozen=True)
class SaveImageNode:
    kind: ClassVar[NodeKind] = NodeKind.SAVE_IMAGE
    images: NodeRef
    filename_prefix: str = FILENAME_PREFIX


Node = Union[
    CheckpointLoaderNode,
    TextEncodeNode,
    SamplerNode,
    EmptyLatentImageNode,
    VAEDecodeNode,
    SaveImageNode,
]


def node_refs(node: Node) -> Iterator[NodeRef]:
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, NodeRef):
            yield value


def node_inputs(node: Node) -> dict[str, Any]:
    inputs: dict[str, Any] = {}
    for f in fields(node):
        value = getattr(node, f.name)
        inputs[f.name] = value.to_json() if isinstance(value, NodeRef) else value
    return inputs


@dataclass(frozen=True)
class Workflow:
    nodes: Mapping[str, Node]

    def __post_init__(self) -> None:
        for node_id, node in self.nodes.items():
            for ref in node_refs(node):
                if ref.node_id not in self.nodes:
                    raise WorkflowError(
                        f"Node {node_id} ({node.kind.value}) references missing node {ref.node_id}"
                    )
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            if node_id in visiting:
                raise WorkflowError(f"Workflow contains a cycle through node {node_id}")
            visiting.add(node_id)
            for ref in node_refs(self.nodes[node_id]):
                visit(ref.node_id)
            visiting.discard(node_id)
            done.add(node_id)

        for node_id in self.nodes:
            visit(node_id)

    def __getitem__(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def nodes_of_kind(self, kind: NodeKind) -> list[Node]:
        return [n for n in self.nodes.values() if n.kind is kind]

    def to_prompt(self) -> dict[str, dict[str, Any]]:
        return {
            node_id: {"class_type": node.kind.value, "inputs": node_inputs(node)}
            for node_id, node in self.nodes.items()
        }


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    checkpoint: str
    count: int = 1
    negative_prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    seed: Optional[int] = None
    settings_seed: Optional[int] = None
    sampler: Optional[str] = None
    scheduler: Optional[str] = None
    cfg_scale: Optional[float] = None
    steps: Optional[int] = None
    denoising_strength: Optional[float] = None


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def resolve_seed(request: GenerationRequest, rng: Optional[random.Random] = None) -> int:
    if request.seed is not None:
        return request.seed
    if request.settings_seed is not None:
        return request.settings_seed
    return (rng or random).randint(0, MAX_RANDOM_SEED)


def build_workflow(request: GenerationRequest, rng: Optional[random.Random] = None) -> Workflow:
    default_size = DEFAULT_XL_SIZE if is_xl_checkpoint(request.checkpoint) else DEFAULT_SIZE
    clip = NodeRef("1", CLIP_SLOT)

    return Workflow(
        nodes={
            "1": CheckpointLoaderNode(ckpt_name=request.checkpoint),
            "2": TextEncodeNode(text=request.prompt, clip=clip),
            "3": TextEncodeNode(text=request.negative_prompt or "", clip=clip),
            "4": SamplerNode(
                seed=resolve_seed(request, rng),
                steps=_pick(request.steps, DEFAULT_STEPS),
                cfg=_pick(request.cfg_scale, DEFAULT_CFG_SCALE),
                sampler_name=_pick(request.sampler, DEFAULT_SAMPLER),
                scheduler=_pick(request.scheduler, DEFAULT_SCHEDULER),
                denoise=_pick(request.denoising_strength, DEFAULT_DENOISE),
                model=NodeRef("1", MODEL_SLOT),
                positive=NodeRef("2"),
                negative=NodeRef("3"),
                latent_image=NodeRef("5"),
            ),
            "5": EmptyLatentImageNode(
                width=_pick(request.width, default_size),
                height=_pick(request.height, default_size),
                batch_size=request.count,
            ),
            "6": VAEDecodeNode(samples=NodeRef("4"), vae=NodeRef("1", VAE_SLOT)),
            SAVE_NODE_ID: SaveImageNode(images=NodeRef("6")),
        }
    )
