"""
Core Exceptions
================

Custom exceptions for the case service.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries (HTTP error handlers, the job
scheduler, the migration CLI).
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ConflictException(ApplicationException):
    """Exception when a write collides with existing state."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class MigrationException(ConfigurationException):
    """Exception for an invalid migration set or an unknown migration version."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class WorkflowServiceException(ExternalServiceException):
    """Exception for workflow service failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Workflow Service", message, details)


class SLAEvaluationException(ApplicationException):
    """Exception when an SLA monitoring pass cannot load its cases."""
