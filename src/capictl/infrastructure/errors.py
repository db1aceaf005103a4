"""Domain errors and failure classification for capictl.

Every user-facing failure derives from :class:`CapictlError`, which carries a
stable :class:`ErrorCode`, a short ``user_message`` and a tuple of ``hints``.
Classification of upstream failure text lives in
:func:`classify_failure_text`; both the compatibility probe and the
suggestion lists call it so that it can be swapped for structured error codes
in one place.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    ENDPOINT_NOT_CONFIGURED = "CONFIG_ENDPOINT_NOT_CONFIGURED"
    INSECURE_TLS_NOT_PERMITTED = "CONFIG_INSECURE_TLS_NOT_PERMITTED"
    CONFIGURATION = "CONFIG_INVALID"
    TRANSPORT = "TRANSPORT_FAILURE"
    AUTHORIZATION = "AUTHORIZATION_REJECTED"
    DECODING = "DECODING_FAILURE"
    SKIPPED = "CAPABILITY_SKIPPED"
    UAA_API = "UAA_API_ERROR"


class FailureCategory(str, Enum):
    AUTH = "auth"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONNECTION = "connection"
    TLS = "tls"
    INVALID = "invalid"
    GENERIC = "generic"


@dataclass(frozen=True)
class ErrorContext:
    code: str
    endpoint: str | None = None
    operation: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict)


class CapictlError(Exception):
    """Base class for errors surfaced to the CLI user."""

    code: ErrorCode = ErrorCode.CONFIGURATION

    def __init__(
        self,
        user_message: str,
        *,
        endpoint: str | None = None,
        operation: str | None = None,
        hints: Iterable[str] = (),
        extra: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.context = ErrorContext(
            code=self.code.value,
            endpoint=endpoint,
            operation=operation,
            extra=dict(extra or {}),
        )
        self._hints = tuple(hints)

    @property
    def hints(self) -> tuple[str, ...]:
        return self._hints

    @property
    def summary(self) -> str:
        if self.context.endpoint:
            return f"{self.user_message} ({self.context.endpoint})"
        return self.user_message

    def log_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"code": self.context.code}
        if self.context.endpoint:
            fields["endpoint"] = self.context.endpoint
        if self.context.operation:
            fields["operation"] = self.context.operation
        fields.update(self.context.extra)
        return fields


class ConfigurationError(CapictlError):
    code = ErrorCode.CONFIGURATION


class EndpointNotConfiguredError(ConfigurationError):
    code = ErrorCode.ENDPOINT_NOT_CONFIGURED

    def __init__(self, user_message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault(
            "hints",
            (
                "Run 'capictl uaa target <url>' to set the UAA endpoint",
                "Or set uaa_endpoint in the configuration file",
                "Or configure the platform API endpoint so the UAA can be discovered",
            ),
        )
        super().__init__(
            user_message
            or "No UAA endpoint configured and unable to discover one from the platform API",
            **kwargs,
        )


class InsecureTlsNotPermittedError(ConfigurationError):
    code = ErrorCode.INSECURE_TLS_NOT_PERMITTED

    def __init__(self, user_message: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault(
            "hints",
            (
                "Set CAPICTL_DEV_MODE=true to allow skip_ssl_validation in development",
                "Otherwise remove skip_ssl_validation and trust the server certificate",
            ),
        )
        super().__init__(
            user_message
            or "skip_ssl_validation is only allowed in development environments",
            **kwargs,
        )


class TransportError(CapictlError):
    code = ErrorCode.TRANSPORT


class DecodingError(CapictlError):
    code = ErrorCode.DECODING


class SkippedCapability(CapictlError):
    code = ErrorCode.SKIPPED


class UaaApiError(CapictlError):
    """Non-success HTTP response from the UAA; only the text is meaningful."""

    code = ErrorCode.UAA_API


class AuthorizationError(UaaApiError):
    """A UAA rejection whose text reads as unauthorized or forbidden."""

    code = ErrorCode.AUTHORIZATION


_CATEGORY_TOKENS: tuple[tuple[FailureCategory, tuple[str, ...]], ...] = (
    (FailureCategory.AUTH, ("not authenticated", "unauthorized")),
    (FailureCategory.FORBIDDEN, ("forbidden", "insufficient")),
    (FailureCategory.NOT_FOUND, ("not found", "404")),
    (FailureCategory.CONNECTION, ("connection", "timeout", "timed out")),
    (FailureCategory.TLS, ("certificate", "ssl", "tls")),
    (FailureCategory.INVALID, ("invalid", "bad request")),
)

AUTHORIZATION_CATEGORIES: frozenset[FailureCategory] = frozenset(
    {FailureCategory.AUTH, FailureCategory.FORBIDDEN}
)

_SUGGESTIONS: Mapping[FailureCategory, tuple[str, ...]] = {
    FailureCategory.AUTH: (
        "Obtain a UAA token and store it with your platform credentials",
        "Check that your client has the required scopes/authorities",
        "Run 'capictl uaa context' to verify authentication status",
    ),
    FailureCategory.FORBIDDEN: (
        "Your client may not have sufficient authorities for this operation",
        "Contact your UAA administrator to grant additional permissions",
        "Try using a client with 'uaa.admin' authority",
    ),
    FailureCategory.NOT_FOUND: (
        "Verify the resource name/ID is correct",
        "Use list commands to find available resources",
        "Check that the UAA endpoint is correct",
    ),
    FailureCategory.CONNECTION: (
        "Check network connectivity to the UAA endpoint",
        "Verify the UAA endpoint URL is correct",
        "Try using --skip-ssl-validation for development environments",
    ),
    FailureCategory.TLS: (
        "SSL certificate verification failed",
        "Use --skip-ssl-validation flag for development environments",
        "Ensure the UAA endpoint has a valid SSL certificate",
    ),
    FailureCategory.INVALID: (
        "Check that all required parameters are provided",
        "Verify parameter formats and values",
        "Use 'capictl uaa <command> --help' for usage examples",
    ),
    FailureCategory.GENERIC: (
        "Check 'capictl uaa context' to verify authentication status",
        "Ensure the UAA endpoint is accessible",
        "Try re-authenticating with fresh credentials",
    ),
}


def classify_failure_text(text: str | BaseException | None) -> FailureCategory:
    """Map free-form failure text onto a :class:`FailureCategory`.

    The match is advisory: the first category whose phrase occurs in the
    lower-cased text wins, anything else is ``GENERIC``.
    """

    if text is None:
        return FailureCategory.GENERIC
    message = str(text).lower()
    for category, tokens in _CATEGORY_TOKENS:
        if any(token in message for token in tokens):
            return category
    return FailureCategory.GENERIC


def is_authorization_failure(text: str | BaseException | None) -> bool:
    return classify_failure_text(text) in AUTHORIZATION_CATEGORIES


def suggestions_for(category: FailureCategory) -> tuple[str, ...]:
    return _SUGGESTIONS.get(category, _SUGGESTIONS[FailureCategory.GENERIC])


class OperationError(CapictlError):
    """User-facing wrapper with context lines and curated suggestions."""

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        *,
        endpoint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        self.operation = operation
        self.cause = cause
        self.category = classify_failure_text(cause)
        extra: dict[str, str] = {}
        if isinstance(cause, CapictlError):
            self.code = cause.code
            endpoint = endpoint or cause.context.endpoint
            extra.update(cause.context.extra)
        if endpoint:
            extra = {"UAA Endpoint": endpoint, **extra}
        extra.update(context or {})
        hints = tuple(getattr(cause, "hints", ()) or ()) or suggestions_for(self.category)
        super().__init__(
            f"Failed to {operation}: {cause}",
            endpoint=endpoint,
            operation=operation,
            hints=hints,
            extra=extra,
        )

    def render(self) -> str:
        lines = [self.user_message]
        if self.context.extra:
            lines.extend(["", "Context:"])
            lines.extend(f"  {key}: {value}" for key, value in self.context.extra.items())
        if self.hints:
            lines.extend(["", "Suggestions:"])
            lines.extend(f"  • {hint}" for hint in self.hints)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()


__all__ = [
    "AUTHORIZATION_CATEGORIES",
    "AuthorizationError",
    "CapictlError",
    "ConfigurationError",
    "DecodingError",
    "EndpointNotConfiguredError",
    "ErrorCode",
    "ErrorContext",
    "FailureCategory",
    "InsecureTlsNotPermittedError",
    "OperationError",
    "SkippedCapability",
    "TransportError",
    "UaaApiError",
    "classify_failure_text",
    "is_authorization_failure",
    "suggestions_for",
]
