from __future__ import annotations

from typing import Any, Optional


class CampaignEngineError(Exception):
    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(CampaignEngineError):
    """Missing business connection, credential, or a remote id the objective requires."""


class AuthorizationError(ConfigurationError):
    """The resolved credential cannot access the target ad account."""


class ValidationError(CampaignEngineError):
    """Missing destination URL or phone number for an objective that needs one."""


class RemoteObjectiveError(CampaignEngineError):
    """Remote rejection of an objective/parameter combination. Retryable inside a fallback chain only."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        subcode: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.code = code
        self.subcode = subcode


class RemoteFatalError(CampaignEngineError):
    def __init__(
        self,
        message: str,
        *,
        remote_message: Optional[str] = None,
        code: Optional[int] = None,
        subcode: Optional[int] = None,
        created: Optional[dict[str, Any]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.remote_message = remote_message
        self.code = code
        self.subcode = subcode
        self.created = created or {}


class OrganicPublishError(RemoteFatalError):
    pass


class GenerationDegradation(CampaignEngineError):
    """Text generation failed and a templated fallback was used. Logged, never shown."""


class GenerationFailure(CampaignEngineError):
    """Image generation failed; the turn cannot continue."""
