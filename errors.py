"""Shared error codes, user-facing messages and agent exceptions."""

from __future__ import annotations

CONFIG_MISSING = "CONFIG_MISSING"
UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
DEVICE_ERROR = "DEVICE_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT = "TIMEOUT"
AUTH_FAILED = "AUTH_FAILED"
PROVIDER_ERROR = "PROVIDER_ERROR"
PROVIDER_PROTOCOL_ERROR = "PROVIDER_PROTOCOL_ERROR"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
TURN_FAILED = "TURN_FAILED"

ERROR_MESSAGES = {
    CONFIG_MISSING: "A required setting or credential is missing.",
    UNKNOWN_PROVIDER: "The configured reasoning provider is not supported.",
    DEVICE_ERROR: "Microphone or wake word engine failed.",
    NETWORK_ERROR: "Network failed, please retry.",
    TIMEOUT: "The request timed out.",
    AUTH_FAILED: "API key is invalid.",
    PROVIDER_ERROR: "The reasoning provider returned an error.",
    PROVIDER_PROTOCOL_ERROR: "The reasoning provider response format is invalid.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    TURN_FAILED: "The command could not be completed.",
}


class AgentError(Exception):
    code = TURN_FAILED

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class ConfigurationError(AgentError):
    code = CONFIG_MISSING


class DeviceError(AgentError):
    code = DEVICE_ERROR


class ResourceReleasedError(DeviceError):
    """Raised by a frame source or engine used after release()."""


class ProviderError(AgentError):
    code = PROVIDER_ERROR


class ProviderConfigurationError(ConfigurationError, ProviderError):
    code = CONFIG_MISSING


class TranscriptionError(AgentError):
    code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str = "", code: str | None = None, retryable: bool = False) -> None:
        super().__init__(message, code)
        self.retryable = retryable
