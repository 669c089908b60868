from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from ..cancel import CancellationToken
from ..errors import BackendAPIError, InvalidResponseDataError, NetworkError
from ..http import body_excerpt, without_trailing_slash
from .workflow import SAVE_NODE_ID, Workflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactDescriptor:
    filename: str
    subfolder: str = ""
    type: str = "output"

    def view_params(self) -> dict[str, str]:
        return {"filename": self.filename, "subfolder": self.subfolder, "type": self.type}


@dataclass(frozen=True)
class HistoryEntry:
    """The part of a ``/history/{prompt_id}`` response the poll loop cares about."""

    artifacts: list[ArtifactDescriptor]
    error: Optional[str] = None


@dataclass(frozen=True)
class SubmittedPrompt:
    prompt_id: str
    headers: dict[str, str]


def _history_error(entry: Mapping[str, Any]) -> Optional[str]:
    status = entry.get("status") or {}
    if not isinstance(status, Mapping):
        return None
    status_str = str(status.get("status_str") or "").lower()
    if status_str != "error":
        return None
    for message in status.get("messages") or []:
        if isinstance(message, list) and len(message) == 2 and message[0] == "execution_error":
            details = message[1] if isinstance(message[1], Mapping) else {}
            return str(details.get("exception_message") or "execution error")
    return "execution error"


def parse_history(prompt_id: str, data: Any, save_node_id: str = SAVE_NODE_ID) -> HistoryEntry:
    if not isinstance(data, Mapping):
        return HistoryEntry(artifacts=[])
    entry = data.get(prompt_id)
    if not isinstance(entry, Mapping):
        return HistoryEntry(artifacts=[])

    outputs = entry.get("outputs") or {}
    node_output = outputs.get(save_node_id) if isinstance(outputs, Mapping) else None
    images = node_output.get("images") if isinstance(node_output, Mapping) else None

    artifacts = [
        ArtifactDescriptor(
            filename=img["filename"],
            subfolder=img.get("subfolder", ""),
            type=img.get("type", "output"),
        )
        for img in images or []
        if isinstance(img, Mapping) and "filename" in img
    ]
    return HistoryEntry(artifacts=artifacts, error=_history_error(entry))


class ComfyUIClient:
    """Thin async wrapper around the ComfyUI HTTP endpoints.

    The caller owns ``http``; this class never opens or closes connections.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        client_id: str = "comfyui",
    ):
        self.http = http
        self.base_url = without_trailing_slash(base_url)
        self.headers = dict(headers or {})
        self.client_id = client_id

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def list_checkpoints(self) -> list[str]:
        try:
            response = await self.http.get(self.url("/models/checkpoints"), headers=self.headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to list checkpoints: {e}") from e
        if not response.is_success:
            raise BackendAPIError(response.status_code, response.reason_phrase, body_excerpt(response))
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseDataError("Checkpoint list is not valid JSON", body_excerpt(response)) from e
        if not isinstance(data, list):
            raise InvalidResponseDataError("Checkpoint list is not an array", data)
        return [str(name) for name in data]

    async def checkpoint_exists(self, checkpoint: str) -> bool:
        try:
            return checkpoint in await self.list_checkpoints()
        except (NetworkError, BackendAPIError, InvalidResponseDataError) as e:
            logger.warning(f"Could not verify checkpoint {checkpoint}: {e}")
            return False

    async def queue_prompt(self, workflow: Workflow, cancel: CancellationToken) -> SubmittedPrompt:
        url = self.url("/prompt")
        payload = {"prompt": workflow.to_prompt(), "client_id": self.client_id}
        logger.info(f"Submitting workflow to {url}")
        try:
            response = await cancel.race(
                self.http.post(url, json=payload, headers=self.headers),
                "during workflow submission",
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to submit workflow: {e}") from e

        if not response.is_success:
            raise BackendAPIError(response.status_code, response.reason_phrase, body_excerpt(response))

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseDataError("Prompt response is not valid JSON", body_excerpt(response)) from e
        prompt_id = data.get("prompt_id") if isinstance(data, Mapping) else None
        if not prompt_id:
            raise InvalidResponseDataError("No prompt_id returned from ComfyUI", data)
        return SubmittedPrompt(prompt_id=str(prompt_id), headers=dict(response.headers))

    async def get_history(self, prompt_id: str, cancel: CancellationToken) -> httpx.Response:
        return await cancel.race(
            self.http.get(self.url(f"/history/{prompt_id}"), headers=self.headers),
            "during polling",
        )

    async def view(self, artifact: ArtifactDescriptor, cancel: CancellationToken) -> bytes:
        try:
            response = await cancel.race(
                self.http.get(self.url("/view"), params=artifact.view_params(), headers=self.headers),
                "during image download",
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to download image {artifact.filename}: {e}") from e
        if not response.is_success:
            raise NetworkError(
                f"Failed to download image: {response.status_code} {response.reason_phrase}"
            )
        logger.info(f"Downloaded {artifact.filename}: {len(response.content)} bytes")
        return response.content
