"""Error kinds raised by the classify service.

Each kind carries the HTTP status and the short public message that the
service boundary (`classify_service._error_response`) puts on the wire.
Upstream bodies and stack traces stay in the logs.
"""

from __future__ import annotations

from typing import Optional


class ClassifyError(Exception):
    status_code: int = 500
    public_message: str = "Unknown error occurred"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)

    @property
    def message(self) -> str:
        return str(self)


class MissingInputError(ClassifyError):
    status_code = 400
    public_message = "No image provided"


class ConfigurationError(ClassifyError):
    status_code = 500
    public_message = "LOVABLE_API_KEY not configured"


class ThrottledError(ClassifyError):
    status_code = 429
    public_message = "Rate limit exceeded. Please try again later."


class QuotaExceededError(ClassifyError):
    status_code = 402
    public_message = "AI credits exhausted. Please add credits to your workspace."


class UpstreamError(ClassifyError):
    status_code = 500
    public_message = "AI Gateway error"

    def __init__(self, message: Optional[str] = None, *, http_status: Optional[int] = None) -> None:
        if message is None and http_status is not None:
            message = f"{self.public_message}: {http_status}"
        super().__init__(message)
        self.http_status = http_status


class EmptyResponseError(UpstreamError):
    public_message = "No response from AI"


def error_for_upstream_status(status: int) -> ClassifyError:
    """Map a non-2xx gateway status to the error the caller should see."""

    if status == 429:
        return ThrottledError()
    if status == 402:
        return QuotaExceededError()
    return UpstreamError(http_status=status)
