"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Grafana metrics export
"""
