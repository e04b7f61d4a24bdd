"""
Engine exception hierarchy.

Everything the engine raises derives from `ApplicationException`, which
carries a message and a JSON-friendly `details` dict. The HTTP layer maps
each subclass to a status code in `shared.api.middleware`.
"""

from typing import Optional


class ApplicationException(Exception):
    """Root of every error the engine raises on purpose."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A domain rule was violated."""


class RepositoryException(ApplicationException):
    """Persisted state could not be read or written as expected."""


class ValidationException(ApplicationException):
    """Input rejected before it reached the domain."""


class ResourceNotFoundException(ApplicationException):
    """Unknown tracking record, configuration, schedule or holiday for the tenant."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        suffix = f" {resource_id}" if resource_id else ""
        super().__init__(
            f"{resource_type}{suffix} not found",
            details or {"resource_type": resource_type, "resource_id": resource_id}
        )


class ConfigurationException(ApplicationException):
    """
    Malformed SLA configuration.

    Raised for a target value without a unit (or the reverse), and for
    business_hours / business_days targets with no calendar assigned.
    """


class NoConfigurationFoundException(ApplicationException):
    """No explicit, matching or default configuration exists for a domain."""

    def __init__(self, domain: str, details: Optional[dict] = None):
        self.domain = domain
        super().__init__(
            f"No active SLA configuration found for domain '{domain}'",
            details or {"domain": domain}
        )


class InvalidTransitionException(DomainException):
    """A tracking record was asked to make a transition its state forbids."""

    def __init__(
        self,
        tracking_id: str,
        action: str,
        status: str,
        details: Optional[dict] = None
    ):
        self.tracking_id = tracking_id
        self.action = action
        self.status = status
        super().__init__(
            f"Cannot {action} SLA tracking {tracking_id} while {status}",
            details or {"tracking_id": tracking_id, "action": action, "status": status}
        )


class ConcurrentModificationException(RepositoryException):
    """Optimistic lock conflict on a tracking record."""

    def __init__(self, tracking_id: str, details: Optional[dict] = None):
        self.tracking_id = tracking_id
        super().__init__(
            f"SLA tracking {tracking_id} was modified concurrently",
            details or {"tracking_id": tracking_id}
        )

