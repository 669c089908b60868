"""Submission, polling, and artifact retrieval for one ComfyUI job.

A :class:`JobRun` walks ``IDLE -> SUBMITTED -> POLLING`` and ends in exactly one
of the terminal states. Every terminal state other than ``COMPLETED`` is
reported to the caller as a typed :class:`~sd_providers.errors.ProviderError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import httpx

from ..cancel import CancellationToken
from ..errors import (
    GenerationAbortedError,
    GenerationTimeoutError,
    JobFailedError,
    ProviderError,
)
from .client import ArtifactDescriptor, ComfyUIClient, parse_history
from .workflow import Workflow

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.5
DEFAULT_MAX_POLL_ATTEMPTS = 60


class JobState(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {JobState.COMPLETED, JobState.TIMED_OUT, JobState.ABORTED, JobState.FAILED}
)

_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.IDLE: frozenset({JobState.SUBMITTED, JobState.ABORTED, JobState.FAILED}),
    JobState.SUBMITTED: frozenset({JobState.POLLING, JobState.ABORTED}),
    JobState.POLLING: TERMINAL_STATES,
}


class InvalidTransitionError(ProviderError):
    pass


@dataclass
class JobRun:
    workflow: Workflow
    state: JobState = JobState.IDLE
    prompt_id: Optional[str] = None
    attempts: int = 0
    artifacts: list[ArtifactDescriptor] = field(default_factory=list)
    response_headers: dict[str, str] = field(default_factory=dict)
    error: Optional[ProviderError] = None

    def transition(self, new_state: JobState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise InvalidTransitionError(f"Cannot move job from {self.state.value} to {new_state.value}")
        logger.debug(f"Job {self.prompt_id or '-'}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail(self, new_state: JobState, error: ProviderError) -> ProviderError:
        self.transition(new_state)
        self.error = error
        return error


class JobRunner:
    """Drive a workflow through the backend and collect its images."""

    def __init__(
        self,
        client: ComfyUIClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    async def run(self, job: JobRun, cancel: CancellationToken) -> list[bytes]:
        await self.submit(job, cancel)
        await self.poll(job, cancel)
        return await self.download(job.artifacts, cancel)

    async def submit(self, job: JobRun, cancel: CancellationToken) -> str:
        if cancel.cancelled:
            raise job.fail(JobState.ABORTED, GenerationAbortedError("before workflow submission"))
        try:
            submitted = await self.client.queue_prompt(job.workflow, cancel)
        except GenerationAbortedError as e:
            job.fail(JobState.ABORTED, e)
            raise
        except ProviderError as e:
            job.fail(JobState.FAILED, e)
            raise

        job.prompt_id = submitted.prompt_id
        job.response_headers = submitted.headers
        job.transition(JobState.SUBMITTED)
        logger.info(f"Workflow submitted, prompt id {job.prompt_id}")
        return submitted.prompt_id

    async def poll(self, job: JobRun, cancel: CancellationToken) -> list[ArtifactDescriptor]:
        if job.prompt_id is None:
            raise InvalidTransitionError("Cannot poll a job that was never submitted")
        job.transition(JobState.POLLING)

        while job.attempts < self.max_attempts:
            try:
                artifacts = await self._poll_once(job, cancel)
            except GenerationAbortedError as e:
                job.fail(JobState.ABORTED, e)
                raise
            except JobFailedError as e:
                job.fail(JobState.FAILED, e)
                raise

            if artifacts:
                job.artifacts = artifacts
                job.transition(JobState.COMPLETED)
                logger.info(
                    f"Job {job.prompt_id} completed after {job.attempts} attempt(s) "
                    f"with {len(artifacts)} image(s)"
                )
                return artifacts

            if job.attempts < self.max_attempts:
                try:
                    await cancel.sleep(self.poll_interval, "during polling wait")
                except GenerationAbortedError as e:
                    job.fail(JobState.ABORTED, e)
                    raise

        raise job.fail(
            JobState.TIMED_OUT,
            GenerationTimeoutError(job.attempts, job.attempts * self.poll_interval),
        )

    async def _poll_once(self, job: JobRun, cancel: CancellationToken) -> list[ArtifactDescriptor]:
        cancel.raise_if_cancelled("during polling")
        job.attempts += 1
        prompt_id = job.prompt_id or ""
        logger.debug(f"Polling job {prompt_id}, attempt {job.attempts}/{self.max_attempts}")

        try:
            response = await self.client.get_history(prompt_id, cancel)
        except httpx.HTTPError as e:
            logger.warning(f"Polling attempt {job.attempts} for job {prompt_id} failed: {e}")
            return []
        if not response.is_success:
            logger.warning(
                f"Polling attempt {job.attempts} for job {prompt_id} returned {response.status_code}"
            )
            return []
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Polling attempt {job.attempts} for job {prompt_id} returned invalid JSON")
            return []

        entry = parse_history(prompt_id, data)
        if entry.error and not entry.artifacts:
            raise JobFailedError(prompt_id, entry.error)
        return entry.artifacts

    async def download(
        self, artifacts: list[ArtifactDescriptor], cancel: CancellationToken
    ) -> list[bytes]:
        cancel.raise_if_cancelled("before image download")
        tasks = [asyncio.ensure_future(self.client.view(a, cancel)) for a in artifacts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
