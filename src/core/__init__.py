"""Framework-free building blocks shared by every layer: the exception hierarchy."""

from core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    NoConfigurationFoundException,
    InvalidTransitionException,
    ConcurrentModificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "NoConfigurationFoundException",
    "InvalidTransitionException",
    "ConcurrentModificationException",
]
