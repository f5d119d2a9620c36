"""Domain-specific exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class LedgerError(Exception):
    """Base class for errors raised while talking to the upstream ledger."""


class SigningError(LedgerError):
    """Raised when the configured private key cannot produce a request signature.

    Always a misconfiguration; never retryable.
    """


class LayerNotConfiguredError(LedgerError):
    """Raised when credentials for the requested layer are missing."""


class LedgerTransportError(LedgerError):
    """Transport-level failure of a single upstream call.

    ``code`` is an HTTP-class status (the real status for HTTP errors, a
    synthetic 502/504 for network failures) so it can flow through the same
    translation table as upstream error codes.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: int,
        guidance: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.guidance = guidance
        self.body = body

    @property
    def status_code(self) -> int:
        return self.code


class LedgerTimeoutError(LedgerTransportError):
    """The upstream did not answer within the configured timeout."""

    def __init__(self, message: str, *, guidance: Optional[str] = None) -> None:
        super().__init__(message, code=504, guidance=guidance)


class LedgerConnectionError(LedgerTransportError):
    """DNS, TLS or connection failure before any HTTP status was received."""

    def __init__(self, message: str, *, guidance: Optional[str] = None) -> None:
        super().__init__(message, code=502, guidance=guidance)


class MalformedRequestError(LedgerTransportError):
    """HTTP 400 from the upstream."""


class LedgerAuthenticationError(LedgerTransportError):
    """HTTP 401 from the upstream."""


class LedgerForbiddenError(LedgerTransportError):
    """HTTP 403: bad signature, unknown thumbprint/system, or IP not allow-listed."""


class LedgerUnavailableError(LedgerTransportError):
    """HTTP 500/503 from the upstream. The caller may decide to retry."""

    retryable = True


class LedgerHttpError(LedgerTransportError):
    """Any other non-2xx HTTP status."""


class InvalidResponseError(LedgerTransportError):
    """A 2xx response whose body is not a JSON-RPC envelope."""

    def __init__(self, message: str, *, body: Optional[str] = None) -> None:
        super().__init__(message, code=502, body=body)


@dataclass(frozen=True)
class ValidationIssue:
    """A single field-level validation failure."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class DealValidationError(ValueError):
    """Raised when a deal payload fails structural or arithmetic validation.

    Carries every violated rule, not only the first one.
    """

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(str(issue) for issue in self.issues))

    def as_dict(self) -> list[dict[str, str]]:
        return [{"path": i.path, "message": i.message} for i in self.issues]


class MethodNotAllowedError(LedgerError):
    """Raised when a caller asks for an upstream method outside the allow-list."""


class DealActionNotAllowedError(LedgerError):
    """Raised when a deal action is not permitted in the deal's current status."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} a deal in status {status!r}")
        self.action = action
        self.status = status
