"""
Background Jobs
===============

Recurring jobs hosted by the case service process.
"""

from drms.jobs.scheduler import ScheduledJobsService

__all__ = ["ScheduledJobsService"]
