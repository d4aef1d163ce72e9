"""
SLA Interfaces Layer
====================

Interface adapters (controllers) for SLA monitoring module.

Contains:
- Controllers: FastAPI route handlers for the scheduled jobs

This is the outermost layer - handles HTTP requests/responses and
delegates to the job scheduler.
"""

from drms.sla.interfaces.controllers import router as jobs_router

__all__ = ["jobs_router"]
