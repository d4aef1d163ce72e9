"""
Shared API
==========

Middleware and exception handlers shared by the case service routes.
"""
