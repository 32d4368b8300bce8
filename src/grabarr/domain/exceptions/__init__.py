"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). This is the base class - DON'T raise it directly! Use a specific subclass
    # so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input validation failed.

    Raised at save time when a profile, custom format or delay profile violates
    its invariants (e.g. cutoff not among the enabled items). Invalid configuration
    never reaches runtime evaluation.

    Example:
        raise ValidationError("Cutoff quality 7 is not an enabled item")
    """

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: a queue item that already completed receiving a "downloading" status.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration (missing integration, bad settings)."""

    pass


class TransientIntegrationError(DomainException):
    """An indexer or download client failed in a way that may heal by itself.

    Hey future me - timeouts, HTTP 429 and auth failures all land here! They are
    RECORDED via the integration health tracker (escalating backoff) and then
    swallowed by the acquisition cycle. Healthy integrations keep working.

    Attributes:
        integration_key: String key of the failing integration ("indexer:3")
        reason: Short classification (timeout, rate_limited, auth_failed, ...)
    """

    def __init__(
        self,
        message: str,
        integration_key: str | None = None,
        reason: str = "unknown",
    ) -> None:
        super().__init__(message)
        self.integration_key = integration_key
        self.reason = reason


class IntegrationUnavailableError(DomainException):
    """Every integration able to serve a direct request is disabled (circuit open).

    Only raised for direct calls (manual grab). Automatic cycles skip disabled
    integrations with a log line instead.
    """

    pass


class ImportFailure(DomainException):
    """The import collaborator could not import a finished download.

    Terminal for the queue item: always produces a blocklist entry and a
    history record.
    """

    pass


__all__ = [
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundException",
    "ImportFailure",
    "IntegrationUnavailableError",
    "InvalidStateException",
    "TransientIntegrationError",
    "ValidationError",
]
