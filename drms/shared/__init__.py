"""
Shared Kernel Module
====================

Shared infrastructure used across the case service modules: structured
logging, metrics export and API middleware.

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
