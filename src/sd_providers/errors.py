from __future__ import annotations

from typing import Any, Optional


class ProviderError(Exception):
    """Base class for every failure raised by an image provider."""

    pass


class ModelNotFoundError(ProviderError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(
            f'Model "{model_id}" not found on the backend. '
            "Use list_models() to see available models."
        )


class BackendAPIError(ProviderError):
    def __init__(self, status: int, status_text: str, details: Optional[str] = None):
        self.status = status
        self.status_text = status_text
        self.details = details
        message = f"Backend API error: {status} {status_text}"
        if details:
            message += f" - {details}"
        super().__init__(message)


class GenerationTimeoutError(ProviderError):
    def __init__(self, attempts: int, seconds: float):
        self.attempts = attempts
        self.seconds = seconds
        super().__init__(
            f"Image generation timed out after {attempts} attempts ({seconds:g}s)"
        )


class GenerationAbortedError(ProviderError):
    def __init__(self, stage: Optional[str] = None):
        self.stage = stage
        message = "Image generation was aborted"
        if stage:
            message += f" {stage}"
        super().__init__(message)


class NetworkError(ProviderError):
    def __init__(self, message: str):
        super().__init__(f"Network error: {message}")


class InvalidResponseDataError(ProviderError):
    def __init__(self, message: str, data: Any = None):
        self.data = data
        super().__init__(message)


class JobFailedError(ProviderError):
    def __init__(self, prompt_id: str, message: str):
        self.prompt_id = prompt_id
        super().__init__(f"Job {prompt_id} failed on the backend: {message}")


class InvalidSettingsError(ProviderError):
    def __init__(self, provider: str, details: str):
        self.provider = provider
        super().__init__(f"Invalid {provider} settings: {details}")


class NoSuchModelError(ProviderError):
    def __init__(self, model_id: str, model_type: str):
        self.model_id = model_id
        self.model_type = model_type
        super().__init__(f"No such {model_type}: {model_id}")
