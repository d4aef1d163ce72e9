"""
Core Module
============

Shared core utilities and abstractions used across the case service.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from drms.core.exceptions import (
    ApplicationException,
    RepositoryException,
    ValidationException,
    ConflictException,
    ResourceNotFoundException,
    ConfigurationException,
    MigrationException,
    ExternalServiceException,
    WorkflowServiceException,
    SLAEvaluationException,
)

__all__ = [
    "ApplicationException",
    "RepositoryException",
    "ValidationException",
    "ConflictException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "MigrationException",
    "ExternalServiceException",
    "WorkflowServiceException",
    "SLAEvaluationException",
]
