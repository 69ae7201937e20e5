"""OpenAI-style error envelopes raised by the proxy."""

from __future__ import annotations

from typing import Optional


class ProxyError(Exception):
    """Error rendered to the client as ``{"error": {message, type, code}}``."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str = "invalid_request_error",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type

    def to_payload(self) -> dict:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.status_code,
            }
        }


class ConfigurationError(ProxyError):
    def __init__(self, message: str) -> None:
        super().__init__(500, message)


class UpstreamError(ProxyError):
    """Upstream answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(status_code or 500, message)


def err_endpoint_not_found(path: str) -> ProxyError:
    return ProxyError(404, f"Endpoint {path} not found")


def err_method_not_allowed(method: str, path: str) -> ProxyError:
    return ProxyError(
        405,
        f"Method {method} not allowed on {path}. Use POST with OpenAI-compatible payload.",
        "method_not_allowed",
    )


def err_missing_credential() -> ConfigurationError:
    return ConfigurationError("NIM_API_KEY not configured")
