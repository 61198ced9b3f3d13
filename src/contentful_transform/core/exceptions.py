"""
Custom exception classes for contentful_transform.

Fatal errors (TransportError, CredentialError, ConfigurationError) unwind the
whole run after derived credentials are cleaned up. Per-record errors
(ValidationError, PublishError) are isolated to one record and aggregated for
end-of-run reporting.
"""

from typing import Any, List, Optional


class ContentfulTransformException(Exception):
    """Base exception class for all contentful_transform exceptions."""

    pass


class ConfigurationError(ContentfulTransformException):
    """Raised when the run configuration cannot be turned into a pipeline."""

    pass


class TransportError(ContentfulTransformException):
    """
    Raised on a network/protocol failure, or by callers that treat a
    non-success response as unrecoverable.

    Example:
        >>> raise TransportError("500 getting page 3", status_code=500, body="...")
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RateLimitedError(ContentfulTransformException):
    """Internal signal for a 429 response; consumed by the client's retry loop."""

    def __init__(self, retry_after: Optional[float] = None, *, response: Any = None):
        self.retry_after = retry_after
        self.response = response
        super().__init__(f"rate limited (retry_after={retry_after})")


class CredentialError(ContentfulTransformException):
    """Raised when a read-only delivery key cannot be created or never becomes active."""

    pass


class ValidationError(ContentfulTransformException):
    """Per-record validation failure. Recoverable; never stops the stream."""

    def __init__(self, record_id: str, errors: List[str]):
        self.record_id = record_id
        self.errors = list(errors)
        super().__init__(f"{record_id} is invalid:\n  " + "\n  ".join(self.errors))


class PublishError(ContentfulTransformException):
    """Per-record write failure against a destination space. Recoverable."""

    def __init__(
        self,
        record_id: str,
        reason: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.record_id = record_id
        self.status_code = status_code
        self.body = body
        message = f"{record_id}: {reason}"
        if status_code is not None:
            message = f"{record_id}: {status_code} {reason}"
        if body:
            message += f"\n  {body[:500]}"
        super().__init__(message)
